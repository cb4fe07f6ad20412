from .bootstrap import app

# Export the app for use in cli.py
__all__ = ['app']
