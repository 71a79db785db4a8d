"""Kubernetes operator reconciling GreetingService resources."""

__version__ = "0.1.0"
