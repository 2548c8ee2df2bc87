"""meshctl: render and deploy mesh services to Kubernetes."""

__version__ = "0.1.0"
