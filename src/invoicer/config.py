from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path

import platformdirs
import yaml
from dotenv import load_dotenv

from invoicer.utils.validators import validate_country_code, validate_currency_code

APP_NAME = "invoicer"

KEYRING_SERVICE = "invoicer"
KEYRING_USERNAME = "service-api-token"


def _resolve_config_dir_for_dotenv() -> Path | None:
    """Resolve config dir for .env loading without depending on env vars from .env itself.

    Only checks sources available before .env is loaded (env var set in shell,
    dev layout, an existing platformdirs directory).
    """
    from_env = os.environ.get("INVOICER_CONFIG_DIR")
    if from_env:
        return Path(from_env)
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / "config"
    if candidate.is_dir():
        return candidate
    pd = Path(platformdirs.user_config_dir(APP_NAME))
    if pd.is_dir():
        return pd
    return None


# Load .env: cwd first (highest priority), then config dir (won't override)
load_dotenv()
_cfg_dir = _resolve_config_dir_for_dotenv()
if _cfg_dir is not None:
    load_dotenv(_cfg_dir / ".env")


def _resolve_dir(env_var: str, default_subdir: str, kind: str) -> Path:
    """Resolve a directory from env var, repo layout, or platform default.

    Priority: 1) env var, 2) dev repo layout, 3) platformdirs user directory.
    """
    from_env = os.environ.get(env_var)
    if from_env:
        return Path(from_env)
    # Development layout: src/invoicer/config.py -> ../../.. = project root
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / default_subdir
    if candidate.is_dir():
        return candidate
    if kind == "config":
        return Path(platformdirs.user_config_dir(APP_NAME))
    return Path(platformdirs.user_data_dir(APP_NAME))


def get_config_dir() -> Path:
    """Resolve config directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("INVOICER_CONFIG_DIR", "config", kind="config")


def get_data_dir() -> Path:
    """Resolve data directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("INVOICER_DATA_DIR", "data", kind="data")


# --- UBL document constants ---

UBL_INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
CAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"

NSMAP = {None: UBL_INVOICE_NS, "cac": CAC_NS, "cbc": CBC_NS}

CUSTOMIZATION_ID = (
    "urn:cen.eu:en16931:2017#conformant"
    "#urn:fdc:peppol.eu:2017:poacc:billing:international:aunz:3.0"
)
PROFILE_ID = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"

ABN_SCHEME_ID = "0151"
INVOICE_TYPE_CODE = "380"  # commercial invoice
DEFAULT_UNIT_CODE = "C62"  # one (unit)
GST_CATEGORY_ID = "S"
GST_SCHEME_ID = "GST"

# --- Render / send service ---

DEFAULT_SERVICE_URL = "https://api.invoicer.example.com/v1"
RENDER_TIMEOUT = 30
SEND_TIMEOUT = 10

OUTPUT_TYPES = ("pdf", "html", "json", "xml")
RENDER_TYPES = ("pdf", "html", "json")

SUPPORTED_LANGUAGES = {
    "en": "English",
    "ar": "Arabic",
    "zh": "Chinese",
    "fr": "French",
    "de": "German",
    "hi": "Hindi",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "ru": "Russian",
    "es": "Spanish",
    "th": "Thai",
}

# --- Display tables ---

CURRENCY_SYMBOLS = {
    "AUD": "$",
    "BRL": "R$",
    "CAD": "$",
    "CHF": "CHF",
    "CNY": "¥",
    "EUR": "€",
    "FJD": "$",
    "GBP": "£",
    "HKD": "$",
    "IDR": "Rp",
    "INR": "₹",
    "JPY": "¥",
    "KRW": "₩",
    "MYR": "RM",
    "NZD": "$",
    "PGK": "K",
    "PHP": "₱",
    "SGD": "$",
    "THB": "฿",
    "USD": "$",
    "VND": "₫",
    "ZAR": "R",
}

COUNTRY_MAP = {
    "AU": "Australia",
    "NZ": "New Zealand",
    "BR": "Brazil",
    "CA": "Canada",
    "CN": "China",
    "DE": "Germany",
    "ES": "Spain",
    "FJ": "Fiji",
    "FR": "France",
    "GB": "United Kingdom",
    "HK": "Hong Kong",
    "ID": "Indonesia",
    "IE": "Ireland",
    "IN": "India",
    "IT": "Italy",
    "JP": "Japan",
    "KR": "South Korea",
    "MY": "Malaysia",
    "NL": "Netherlands",
    "PG": "Papua New Guinea",
    "PH": "Philippines",
    "SG": "Singapore",
    "TH": "Thailand",
    "US": "United States",
    "VN": "Vietnam",
    "ZA": "South Africa",
}


# --- Invoice defaults ---


@dataclass(frozen=True)
class Settings:
    """Defaults applied by the invoice builder. Loaded once per process."""

    gst_rate: Decimal = Decimal("0.1")
    currency: str = "AUD"
    country: str = "AU"
    reference: str = "Generic"
    invoice_duration_days: int = 14
    id_length: int = 7
    max_ids: int = 9999999

    @classmethod
    def from_dict(cls, d: dict) -> Settings:
        """Create Settings from a YAML-loaded dict, keeping defaults for absent keys.

        Raises ValueError for anything that is not a valid setting.
        """
        if not isinstance(d, dict):
            raise ValueError(f"settings must be a mapping, got {type(d).__name__}")
        base = cls()
        try:
            gst_rate = Decimal(str(d.get("gst_rate", base.gst_rate)))
        except InvalidOperation:
            raise ValueError(f"Invalid gst_rate: {d.get('gst_rate')!r}") from None
        if not gst_rate.is_finite() or gst_rate < 0 or gst_rate >= 1:
            raise ValueError(f"gst_rate must be a fraction in [0, 1): {gst_rate}")
        duration = _int_setting(d, "invoice_duration_days", base.invoice_duration_days)
        if duration < 0:
            raise ValueError("invoice_duration_days must not be negative")
        id_length = _int_setting(d, "id_length", base.id_length)
        max_ids = _int_setting(d, "max_ids", base.max_ids)
        if id_length < 1 or max_ids < 1:
            raise ValueError("id_length and max_ids must be positive")
        return cls(
            gst_rate=gst_rate,
            currency=validate_currency_code(str(d.get("currency", base.currency)).upper()),
            country=validate_country_code(str(d.get("country", base.country)).upper()),
            reference=str(d.get("reference", base.reference)),
            invoice_duration_days=duration,
            id_length=id_length,
            max_ids=max_ids,
        )


def _int_setting(d: dict, key: str, default: int) -> int:
    value = d.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"Invalid {key}: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {key}: {value!r}") from None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return process-wide settings, reading config/settings.yaml on first use."""
    path = get_config_dir() / "settings.yaml"
    if not path.is_file():
        return Settings()
    return Settings.from_dict(load_yaml(path) or {})


# --- Keyring helpers ---


def _get_keyring_token() -> str | None:
    """Try to get the service API token from the OS keyring.

    Returns None on any failure (no backend, not stored, dbus errors, etc.).
    """
    try:
        import keyring

        return keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
    except Exception:
        return None


def _set_keyring_token(token: str) -> bool:
    """Store the service API token in the OS keyring. Returns True on success."""
    try:
        import keyring

        keyring.set_password(KEYRING_SERVICE, KEYRING_USERNAME, token)
        return True
    except Exception:
        return False


def get_service_url() -> str:
    """Base URL of the render/send service, without trailing slash."""
    return os.environ.get("INVOICER_SERVICE_URL", DEFAULT_SERVICE_URL).rstrip("/")


def get_api_token() -> str:
    """Return the render/send service API token.

    Priority: 1) INVOICER_API_TOKEN env var, 2) OS keyring.
    Raises KeyError if neither source has the token.
    """
    token = os.environ.get("INVOICER_API_TOKEN")
    if token is not None:
        return token
    token = _get_keyring_token()
    if token is not None:
        return token
    raise KeyError("INVOICER_API_TOKEN")


# --- YAML config ---


def load_yaml(path: Path) -> dict:
    """Load and parse a YAML file, returning the top-level dict."""
    return yaml.safe_load(path.read_text())


def load_party(name: str) -> dict:
    """Load a party profile from config/parties/{name}.yaml."""
    return load_yaml(get_config_dir() / "parties" / f"{name}.yaml")


def list_parties() -> list[str]:
    """Return sorted list of party profile names from config/parties/."""
    parties_dir = get_config_dir() / "parties"
    if not parties_dir.exists():
        return []
    return sorted(f.stem for f in parties_dir.glob("*.yaml"))


def save_party(name: str, data: dict) -> Path:
    """Save a party profile to config/parties/{name}.yaml (atomic write)."""
    parties_dir = get_config_dir() / "parties"
    parties_dir.mkdir(parents=True, exist_ok=True)
    path = parties_dir / f"{name}.yaml"
    tmp = path.with_suffix(".tmp")
    tmp.write_text(yaml.dump(data, default_flow_style=False, allow_unicode=True))
    os.replace(tmp, path)
    return path


def get_issued_dir() -> Path:
    """Return the directory where built invoices are saved."""
    return get_data_dir() / "issued"
