"""Signature Workflow Engine - multi-party document signing coordination"""

__version__ = "1.0.0"
