"""Quality assurance across pipeline stages."""

from .assurance import QualityAssurance, generate_quality_report

__all__ = ["QualityAssurance", "generate_quality_report"]
