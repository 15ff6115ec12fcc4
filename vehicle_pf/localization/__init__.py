"""Localization algorithms: Particle Filter."""

from .PF import ParticleFilter

__all__ = ["ParticleFilter"]
