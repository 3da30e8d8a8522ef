"""
SalesOps Dashboard - Configuration et utilitaires partagés

Env vars, Supabase client holder, immutable lookup maps.
"""

import os
import logging
from types import MappingProxyType
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from dotenv import load_dotenv
from supabase import acreate_client, AsyncClient

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger("config")

# Supabase (VITE_ names kept so the frontend .env can be shared)
SUPABASE_URL = os.environ.get('SUPABASE_URL') or os.environ.get('VITE_SUPABASE_URL', '')
SUPABASE_KEY = (
    os.environ.get('SUPABASE_SERVICE_ROLE_KEY')
    or os.environ.get('SUPABASE_ANON_KEY')
    or os.environ.get('VITE_SUPABASE_ANON_KEY', '')
)

# Timezones
STATS_TIMEZONE = os.environ.get('STATS_TIMEZONE', 'UTC')
SHIFT_TIMEZONE = os.environ.get('SHIFT_TIMEZONE', 'Europe/Madrid')

# Integrations
MANYCHAT_API_KEY = os.environ.get('MANYCHAT_API_KEY', '')
KAJABI_CLIENT_ID = os.environ.get('KAJABI_CLIENT_ID', '')
KAJABI_CLIENT_SECRET = os.environ.get('KAJABI_CLIENT_SECRET', '')
CALENDLY_TOKEN = os.environ.get('CALENDLY_TOKEN', '')
GA4_PROPERTY_ID = os.environ.get('GA4_PROPERTY_ID', '')
GOOGLE_SERVICE_ACCOUNT_JSON = os.environ.get('GOOGLE_SERVICE_ACCOUNT_JSON', '')
GOOGLE_APPLICATION_CREDENTIALS = os.environ.get('GOOGLE_APPLICATION_CREDENTIALS', '')
GA4_BOOKING_EVENT = os.environ.get('GA4_BOOKING_EVENT', 'calendly_booking')
META_PIXEL_ID = os.environ.get('META_PIXEL_ID', '')
META_ACCESS_TOKEN = os.environ.get('META_ACCESS_TOKEN', '')
ZOOM_WEBHOOK_SECRET = os.environ.get('ZOOM_WEBHOOK_SECRET', '')
OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o-mini')
ACADEMIC_APP_URL = os.environ.get('ACADEMIC_APP_URL', 'https://academic.inglesahorita.com').rstrip('/')
DISCORD_WEBHOOK_URL = os.environ.get('DISCORD_WEBHOOK_URL', '')
DISCORD_NOTIFY_USER_ID = os.environ.get('DISCORD_NOTIFY_USER_ID', '')

HTTP_TIMEOUT = float(os.environ.get('HTTP_TIMEOUT', '30'))


# ==================== SUPABASE ====================

_db: Optional[AsyncClient] = None


async def init_db() -> Optional[AsyncClient]:
    """Crée le client Supabase async (appelé au startup)"""
    global _db
    if _db is not None:
        return _db
    if not SUPABASE_URL or not SUPABASE_KEY:
        logger.warning("SUPABASE_URL / key not configured, database calls will fail")
        return None
    _db = await acreate_client(SUPABASE_URL, SUPABASE_KEY)
    logger.info(f"[CONFIG] Supabase client ready: {SUPABASE_URL}")
    return _db


def get_db() -> Any:
    """Retourne le client Supabase courant"""
    if _db is None:
        raise RuntimeError("Supabase client not initialised")
    return _db


def set_db(client: Any) -> None:
    """Remplace le client (tests, scripts)"""
    global _db
    _db = client


# ==================== LOOKUP MAPS ====================
# Read-only. Functions take them as default arguments so callers can pass another map.

COUNTRY_CODES = MappingProxyType({
    # North America
    "1": "US/CA",
    "1242": "BS", "1246": "BB", "1264": "AI", "1268": "AG", "1284": "VG",
    "1340": "VI", "1345": "KY", "1473": "GD", "1649": "TC", "1664": "MS",
    "1670": "MP", "1671": "GU", "1684": "AS", "1721": "SX", "1758": "LC",
    "1784": "VC", "1787": "PR", "1809": "DO", "1829": "DO", "1849": "DO",
    "1868": "TT", "1869": "KN", "1876": "JM",
    # Europe
    "30": "GR", "31": "NL", "32": "BE", "33": "FR", "34": "ES", "36": "HU",
    "39": "IT", "40": "RO", "41": "CH", "43": "AT", "44": "GB", "45": "DK",
    "46": "SE", "47": "NO", "48": "PL", "49": "DE",
    "351": "PT", "352": "LU", "353": "IE", "354": "IS", "355": "AL",
    "356": "MT", "357": "CY", "358": "FI", "359": "BG", "370": "LT",
    "371": "LV", "372": "EE", "373": "MD", "374": "AM", "375": "BY",
    "376": "AD", "377": "MC", "378": "SM", "380": "UA", "381": "RS",
    "382": "ME", "383": "XK", "385": "HR", "386": "SI", "387": "BA",
    "389": "MK",
    # Asia
    "60": "MY", "61": "AU", "62": "ID", "63": "PH", "64": "NZ", "65": "SG",
    "66": "TH", "81": "JP", "82": "KR", "84": "VN", "86": "CN", "90": "TR",
    "91": "IN", "92": "PK", "93": "AF", "94": "LK", "95": "MM", "98": "IR",
    # Latin America
    "52": "MX", "54": "AR", "55": "BR", "56": "CL", "57": "CO", "58": "VE",
    "591": "BO", "592": "GY", "593": "EC", "594": "GF", "595": "PY",
    "596": "MQ", "597": "SR", "598": "UY",
    # Africa
    "20": "EG", "27": "ZA",
    "212": "MA", "213": "DZ", "216": "TN", "218": "LY", "220": "GM",
    "221": "SN", "222": "MR", "223": "ML", "224": "GN", "225": "CI",
    "226": "BF", "227": "NE", "228": "TG", "229": "BJ", "230": "MU",
    "231": "LR", "232": "SL", "233": "GH", "234": "NG", "235": "TD",
    "236": "CF", "237": "CM", "238": "CV", "239": "ST", "240": "GQ",
    "241": "GA", "242": "CG", "243": "CD", "244": "AO", "245": "GW",
    "246": "IO", "248": "SC", "249": "SD", "250": "RW", "251": "ET",
    "252": "SO", "253": "DJ", "254": "KE", "255": "TZ", "256": "UG",
    "257": "BI", "258": "MZ", "259": "ZM", "260": "ZW", "261": "MG",
    "262": "RE", "263": "ZW", "264": "NA", "265": "MW", "266": "LS",
    "267": "BW", "268": "SZ", "269": "KM", "290": "SH", "291": "ER",
    "297": "AW", "298": "FO", "299": "GL",
    # Middle East / Central Asia
    "966": "SA", "971": "AE", "972": "IL", "973": "BH", "974": "QA",
    "975": "BT", "976": "MN", "977": "NP", "992": "TJ", "993": "TM",
    "994": "AZ", "995": "GE", "996": "KG", "998": "UZ",
})

# Call status column -> ManyChat custom field id
MANYCHAT_FIELD_MAP = MappingProxyType({
    "picked_up": 13238831,
    "confirmed": 13312466,
    "showed_up": 13238842,
    "purchased": 13238837,
})


# ==================== HELPERS ====================

_http_transport: Optional[httpx.AsyncBaseTransport] = None


def http_client(**kwargs) -> httpx.AsyncClient:
    """Client httpx des intégrations (timeout commun)"""
    kwargs.setdefault("timeout", HTTP_TIMEOUT)
    if _http_transport is not None:
        kwargs["transport"] = _http_transport
    return httpx.AsyncClient(**kwargs)


def set_http_transport(transport: Optional[httpx.AsyncBaseTransport]) -> None:
    """Remplace le transport HTTP (tests: httpx.MockTransport)"""
    global _http_transport
    _http_transport = transport


def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()


def rows(response: Any) -> list:
    """Extrait la liste de lignes d'une réponse Supabase (None -> [])"""
    data = getattr(response, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def env_snapshot() -> Dict[str, bool]:
    """Which integrations are configured (no secrets)"""
    return {
        "supabase": bool(SUPABASE_URL and SUPABASE_KEY),
        "manychat": bool(MANYCHAT_API_KEY),
        "kajabi": bool(KAJABI_CLIENT_ID and KAJABI_CLIENT_SECRET),
        "calendly": bool(CALENDLY_TOKEN),
        "ga4": bool(GA4_PROPERTY_ID),
        "meta": bool(META_PIXEL_ID and META_ACCESS_TOKEN),
        "zoom": bool(ZOOM_WEBHOOK_SECRET),
        "openai": bool(OPENAI_API_KEY),
        "discord": bool(DISCORD_WEBHOOK_URL),
    }
