# classes/settings.py
from pathlib import Path
from typing import Any, Dict, List
import os

import commentjson
from dotenv import load_dotenv

load_dotenv()

_ROOT = Path(__file__).resolve().parent.parent

HOTEL_CONFIG_PATH = os.getenv("VICEBOT_HOTEL_CONFIG", str(_ROOT / "config" / "hotel_config.jsonc"))
PLACES_CATALOG_PATH = os.getenv("VICEBOT_PLACES_CATALOG", str(_ROOT / "config" / "places.jsonc"))

ORACLE_MODEL = os.getenv("ORACLE_MODEL", "gemini-2.5-flash-lite")
ORACLE_TIMEOUT_SECONDS = float(os.getenv("ORACLE_TIMEOUT_SECONDS", "8"))
ORACLE_RETRIES = int(os.getenv("ORACLE_RETRIES", "2"))
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "your-project-id")
REGION = os.getenv("GOOGLE_CLOUD_REGION", "us-central1")

# Local heuristics never report more than this.
HEURISTIC_CONFIDENCE_CAP = 0.7


def _load_jsonc(path: str, required: Dict[str, type]) -> Dict[str, Any]:
    """
    Load a JSON-with-comments config file.
    Fails fast if the file or required top-level keys are missing.
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found at '{cfg_path}'.")

    with cfg_path.open("r", encoding="utf-8") as f:
        data = commentjson.load(f)

    for key, kind in required.items():
        if key not in data or not isinstance(data[key], kind):
            raise ValueError(f"Config '{cfg_path.name}' missing or invalid key: {key}")

    return data


def load_hotel_config(path: str | None = None) -> Dict[str, Any]:
    return _load_jsonc(
        path or HOTEL_CONFIG_PATH,
        {"AREAS": dict, "AMBIGUOUS_ZONES": dict, "THRESHOLDS": dict, "STATUS_POLICY": dict},
    )


def load_places_catalog(path: str | None = None) -> List[Dict[str, Any]]:
    return _load_jsonc(path or PLACES_CATALOG_PATH, {"PLACES": list})["PLACES"]


_HOTEL_CONFIG = load_hotel_config()
AREAS: Dict[str, Dict[str, Any]] = _HOTEL_CONFIG["AREAS"]
AMBIGUOUS_ZONES: Dict[str, Dict[str, Any]] = _HOTEL_CONFIG["AMBIGUOUS_ZONES"]
THRESHOLDS: Dict[str, Any] = _HOTEL_CONFIG["THRESHOLDS"]
STATUS_POLICY: Dict[str, Any] = _HOTEL_CONFIG["STATUS_POLICY"]

#! AREA ROUTING


def area_group_id(area_code: str | None) -> str | None:
    if not area_code or area_code not in AREAS:
        return None
    env_override = os.getenv(f"VICEBOT_GROUP_{area_code.upper()}")
    return env_override or AREAS[area_code].get("group_id")


def folio_prefix(area_code: str | None) -> str:
    if area_code and area_code in AREAS:
        return AREAS[area_code].get("folio_prefix") or area_code.upper()
    return "GEN"
