from .installer import IngressInstaller, IngressState

__all__ = ["IngressInstaller", "IngressState"]
