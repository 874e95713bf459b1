"""
Drift Guardian - infrastructure drift tracking for CI pipelines.

Pipeline runs post terraform plan/apply results to /environments; persistent
drift on the comparison branch escalates to a GitLab issue that is closed again
once the drift is resolved.
"""

__version__ = "0.2.1"
