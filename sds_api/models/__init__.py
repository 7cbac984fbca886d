from .documents import Document, dump_tags, load_tags
from .password_reset_tokens import PasswordResetToken

__all__ = [
    "Document",
    "PasswordResetToken",
    "dump_tags",
    "load_tags",
]
