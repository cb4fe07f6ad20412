import logging
import os
from typing import Callable

from ..models import InvokingUser

logger = logging.getLogger("kubestrap.dotfiles")

MARKER = "# >>> kubestrap >>>"

BASHRC_BLOCK = f"""
{MARKER}
export KUBECONFIG="$HOME/.kube/config"
source <(kubectl completion bash)
alias k=kubectl
complete -o default -F __start_kubectl k
# <<< kubestrap <<<
"""


def install_dotfiles(user: InvokingUser, chown: Callable[[str, int, int], None] = os.chown) -> bool:
    """Append kubectl conveniences to the user's .bashrc once.

    Returns:
        bool: True if the block was added, False if it was already there
    """
    bashrc = user.home / '.bashrc'
    existing = bashrc.read_text(encoding='utf-8') if bashrc.exists() else ''
    if MARKER in existing:
        logger.info(f"✅ {bashrc} already configured")
        return False

    with open(bashrc, 'a', encoding='utf-8') as f:
        f.write(BASHRC_BLOCK)
    chown(str(bashrc), user.uid, user.gid)
    logger.info(f"🐚 Added kubectl aliases and completion to {bashrc}")
    return True
