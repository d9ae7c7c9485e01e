"""
multikf

Provision disposable single-node (or few-node) Kubernetes clusters on a
workstation through kind (docker) or vagrant.
"""

__version__ = "0.5.0"
