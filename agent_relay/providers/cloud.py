"""Power Platform cloud endpoints used to reach published agents."""

from typing import Dict

# API host suffix per Power Platform cloud.
CLOUD_API_HOSTS: Dict[str, str] = {
    "prod": "api.powerplatform.com",
    "firstrelease": "api.powerplatform.com",
    "preprod": "api.preprod.powerplatform.com",
    "test": "api.test.powerplatform.com",
    "dev": "api.dev.powerplatform.com",
    "exp": "api.exp.powerplatform.com",
    "prv": "api.prv.powerplatform.com",
    "gov": "api.gov.powerplatform.microsoft.us",
    "high": "api.high.powerplatform.microsoft.us",
    "dod": "api.appsplatform.us",
    "mooncake": "api.powerplatform.partner.microsoftonline.cn",
}

# Environment ids are split before their last N hex digits to form the host.
_ID_SUFFIX_LENGTH_PROD = 2
_ID_SUFFIX_LENGTH_OTHER = 1


def scope_from_cloud(cloud: str) -> str:
    """Return the OAuth scope that grants access to agents in ``cloud``."""
    try:
        host = CLOUD_API_HOSTS[cloud.lower()]
    except KeyError:
        raise ValueError(f"Unknown Power Platform cloud: {cloud}") from None
    return f"https://{host}/.default"


def environment_host(cloud: str, environment_id: str) -> str:
    """Return the environment-specific API host.

    Environment ids are lowercased and stripped of dashes, then
    split into ``{prefix}.{suffix}.environment.{api host}``.
    """
    cloud = cloud.lower()
    if cloud not in CLOUD_API_HOSTS:
        raise ValueError(f"Unknown Power Platform cloud: {cloud}")

    normalized = environment_id.strip().lower().replace("-", "")
    suffix_length = (
        _ID_SUFFIX_LENGTH_PROD if cloud in ("prod", "firstrelease") else _ID_SUFFIX_LENGTH_OTHER
    )
    if len(normalized) <= suffix_length:
        raise ValueError(f"Environment id is too short: {environment_id!r}")

    prefix = normalized[:-suffix_length]
    suffix = normalized[-suffix_length:]
    return f"{prefix}.{suffix}.environment.{CLOUD_API_HOSTS[cloud]}"
