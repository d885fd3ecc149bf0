"""docchat: upload documents and ask questions about them."""

__version__ = "0.1.0"
