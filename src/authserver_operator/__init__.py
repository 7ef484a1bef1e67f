"""AuthServer Operator: keeps the public Ingress of an AuthServer in shape."""

__version__ = "0.1.0"
