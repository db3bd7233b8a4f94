"""vitalsync -- wearable health baselines, readiness insights and metric relay."""

__version__ = "0.1.0"
