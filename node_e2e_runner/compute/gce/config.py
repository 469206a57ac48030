"""Configuration for the Google Compute Engine backend."""

from pydantic import BaseModel, SecretStr


class GCEConfig(BaseModel):
    """Configuration for the Google Compute Engine backend.

    Without ``token``, application default credentials are used and refreshed
    as they expire. Loading them is retried ``credential_attempts`` times,
    ``credential_delay`` seconds apart.
    """

    project: str
    zone: str
    token: SecretStr | None = None
    machine_type: str = "n1-standard-1"
    api_base_url: str = "https://compute.googleapis.com"
    credential_attempts: int = 10
    credential_delay: float = 6.0
