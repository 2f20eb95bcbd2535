"""Code cemetery: index code, retire it with tombstones and spot it coming back."""

__version__ = "0.1.0"
