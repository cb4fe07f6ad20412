from setuptools import setup, find_packages

setup(
    name='kubestrap',
    version='0.1.0',
    packages=find_packages(exclude=['kubestrap.tests', 'kubestrap.tests.*']),
    include_package_data=True,
    install_requires=[
        'typer',
        'click',
        'kubernetes',
        'python-dotenv',
        'requests',
        'pyyaml',
        'urllib3',
    ],
    extras_require={
        'test': [
            'pytest',
            'jsonschema',
        ],
    },
    entry_points={
        'console_scripts': [
            'kubestrap=kubestrap.cli:main'
        ]
    },
    author='Your Name',
    description='Idempotent bootstrap of a verified single-node Kubernetes cluster',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)
