"""Configuration constants for CityHealth Map.

All configurable parameters are centralized here for easy tuning.

Classes:
    AppConfig: UI application settings
    MapMode: The three map views sharing one surface
    ProviderType: Provider categories and mode base sets
    MapConfig: Default map view parameters
    CameraConfig: Fly-to zoom levels and durations
    TileConfig: Light/dark raster tile sources
    ClusterConfig: Pixel-radius clustering parameters
    MarkerConfig: Marker sizes and borders
    StyleConfig: Per-type colors and glyphs
    FilterConfig: Query-string keys for shared links
    GeoConfig: Earth model and display rounding
"""

from pathlib import Path

# Package root directory (where cityhealth_map/ lives)
PACKAGE_DIR = Path(__file__).parent

# Project root directory (parent of cityhealth_map/)
PROJECT_ROOT = PACKAGE_DIR.parent

# Optional provider records for the demo app (JSON list of provider dicts)
DATA_DIR = PROJECT_ROOT / "data"
PROVIDERS_JSON_PATH = DATA_DIR / "providers.json"


class AppConfig:
    """UI application settings."""

    TITLE = "CityHealth - Interactive Provider Map"
    ICON = "🏥"
    LAYOUT = "wide"
    MAP_HEIGHT_PX = 600


class MapMode:
    """Map views. Each mode has its own cluster layer on the shared surface."""

    PROVIDERS = "providers"
    EMERGENCY = "emergency"
    BLOOD = "blood"

    ALL = [PROVIDERS, EMERGENCY, BLOOD]

    TITLES = {
        PROVIDERS: "Interactive Provider Map",
        EMERGENCY: "Emergency Services",
        BLOOD: "Blood Donation & Transfusion Centers",
    }

    @staticmethod
    def is_valid(mode: str) -> bool:
        return mode in MapMode.ALL


class ProviderType:
    """Provider categories (single source of truth for type strings)."""

    HOSPITAL = "hospital"
    CLINIC = "clinic"
    DOCTOR = "doctor"
    PHARMACY = "pharmacy"
    LAB = "lab"
    RADIOLOGY_CENTER = "radiology_center"
    BLOOD_CABIN = "blood_cabin"
    MEDICAL_EQUIPMENT = "medical_equipment"
    BIRTH_HOSPITAL = "birth_hospital"

    ALL = [
        HOSPITAL,
        CLINIC,
        DOCTOR,
        PHARMACY,
        LAB,
        RADIOLOGY_CENTER,
        BLOOD_CABIN,
        MEDICAL_EQUIPMENT,
        BIRTH_HOSPITAL,
    ]

    # Blood mode starts from hospitals and donation cabins only
    BLOOD_TYPES = frozenset({HOSPITAL, BLOOD_CABIN})

    DISPLAY_NAMES = {
        HOSPITAL: "Hospital",
        CLINIC: "Clinic",
        DOCTOR: "Doctor",
        PHARMACY: "Pharmacy",
        LAB: "Laboratory",
        RADIOLOGY_CENTER: "Radiology",
        BLOOD_CABIN: "Blood center",
        MEDICAL_EQUIPMENT: "Medical equipment",
        BIRTH_HOSPITAL: "Maternity",
    }
    assert set(DISPLAY_NAMES.keys()) == set(ALL)

    @staticmethod
    def is_valid(provider_type: str) -> bool:
        return provider_type in ProviderType.ALL


class MapConfig:
    """Default map view parameters."""

    # Initial center: Sidi Bel Abbès, Algeria
    START_CENTER_LAT = 35.1975
    START_CENTER_LON = -0.6300
    DEFAULT_ZOOM = 13

    MIN_ZOOM = 0
    MAX_ZOOM = 19

    # fit_bounds() defaults
    FIT_BOUNDS_PADDING_PX = 50
    FIT_BOUNDS_MAX_ZOOM = 15

    # Container size assumed until the host reports the real one
    DEFAULT_WIDTH_PX = 1000
    DEFAULT_HEIGHT_PX = AppConfig.MAP_HEIGHT_PX

    # Zoom control corner (mirrored for right-to-left locales)
    CONTROL_POSITION_LTR = "topright"
    CONTROL_POSITION_RTL = "topleft"

    DIRECTIONS_URL = "https://www.google.com/maps/dir/?api=1&destination={lat},{lon}"


class CameraConfig:
    """Camera animation parameters."""

    DETAIL_ZOOM = 16  # Zoom after selecting a provider
    LOCATE_ZOOM = 15  # Zoom after locating the user
    FLY_DURATION_S = 0.5


class TileConfig:
    """Raster tile sources per theme. Theme changes swap only the URL."""

    LIGHT = "light"
    DARK = "dark"
    THEMES = [LIGHT, DARK]

    URLS = {
        LIGHT: [
            "https://a.tile.openstreetmap.org/{z}/{x}/{y}.png",
            "https://b.tile.openstreetmap.org/{z}/{x}/{y}.png",
            "https://c.tile.openstreetmap.org/{z}/{x}/{y}.png",
        ],
        DARK: [
            "https://a.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}.png",
            "https://b.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}.png",
            "https://c.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}.png",
        ],
    }
    assert set(URLS.keys()) == set(THEMES)

    ATTRIBUTION = '© <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors'
    TILE_SIZE_PX = 256
    MAX_ZOOM = 19


class ClusterConfig:
    """Pixel-radius clustering (one cluster layer per map mode)."""

    # Markers closer than this many screen pixels merge into one cluster
    RADIUS_BY_MODE = {
        MapMode.PROVIDERS: 50,
        MapMode.EMERGENCY: 40,
        MapMode.BLOOD: 40,
    }
    assert set(RADIUS_BY_MODE.keys()) == set(MapMode.ALL)
    DEFAULT_RADIUS_PX = 45

    # At or above this zoom every marker is drawn individually
    DISABLE_CLUSTERING_AT_ZOOM = 16

    # Web Mercator: world is 256 px wide at zoom 0
    WORLD_SIZE_PX_AT_ZOOM_0 = 256
    WEB_MERCATOR_HALF_WORLD_M = 20037508.342789244

    CLUSTER_COLOR = [37, 99, 235, 220]
    CLUSTER_TEXT_COLOR = [255, 255, 255, 255]
    CLUSTER_MIN_RADIUS_PX = 16
    CLUSTER_MAX_RADIUS_PX = 34


class MarkerConfig:
    """Marker sizes (pixels) for normal and selected states."""

    RADIUS_PX = 18
    SELECTED_RADIUS_PX = 22
    BORDER_PX = 3
    SELECTED_BORDER_PX = 4
    SELECTED_BORDER_COLOR = [34, 197, 94, 255]  # green ring around selection

    USER_LOCATION_RADIUS_PX = 12
    USER_LOCATION_COLOR = [59, 130, 246, 255]

    # Selected markers are drawn above the rest
    SELECTED_Z_BOOST = 1000


class StyleConfig:
    """Per-type marker colors (RGBA) and glyphs."""

    # (fill, border) per provider type
    TYPE_COLORS_RGBA = {
        ProviderType.HOSPITAL: ([59, 130, 246, 255], [37, 99, 235, 255]),
        ProviderType.BIRTH_HOSPITAL: ([236, 72, 153, 255], [219, 39, 119, 255]),
        ProviderType.CLINIC: ([34, 197, 94, 255], [22, 163, 74, 255]),
        ProviderType.DOCTOR: ([16, 185, 129, 255], [5, 150, 105, 255]),
        ProviderType.PHARMACY: ([249, 115, 22, 255], [234, 88, 12, 255]),
        ProviderType.LAB: ([139, 92, 246, 255], [124, 58, 237, 255]),
        ProviderType.BLOOD_CABIN: ([239, 68, 68, 255], [220, 38, 38, 255]),
        ProviderType.RADIOLOGY_CENTER: ([6, 182, 212, 255], [8, 145, 178, 255]),
        ProviderType.MEDICAL_EQUIPMENT: ([107, 114, 128, 255], [75, 85, 99, 255]),
    }
    assert set(TYPE_COLORS_RGBA.keys()) == set(ProviderType.ALL)

    # Emergency-capable providers in emergency mode use the alert palette
    EMERGENCY_COLORS_RGBA = ([220, 38, 38, 255], [185, 28, 28, 255])

    # Unknown types fall back to the neutral equipment palette
    FALLBACK_COLORS_RGBA = TYPE_COLORS_RGBA[ProviderType.MEDICAL_EQUIPMENT]

    TYPE_GLYPHS = {
        ProviderType.HOSPITAL: "🏥",
        ProviderType.BIRTH_HOSPITAL: "👶",
        ProviderType.CLINIC: "🏢",
        ProviderType.DOCTOR: "👨‍⚕️",
        ProviderType.PHARMACY: "💊",
        ProviderType.LAB: "🔬",
        ProviderType.RADIOLOGY_CENTER: "📡",
        ProviderType.BLOOD_CABIN: "🩸",
        ProviderType.MEDICAL_EQUIPMENT: "🩺",
    }
    assert set(TYPE_GLYPHS.keys()) == set(ProviderType.ALL)
    EMERGENCY_GLYPH = "🚑"
    FALLBACK_GLYPH = "📍"


class FilterConfig:
    """Query-string keys mirrored from the filter state."""

    KEY_MODE = "mode"
    KEY_QUERY = "q"
    KEY_TYPES = "types"
    KEY_OPEN_NOW = "open"

    TYPES_SEPARATOR = ","
    TRUE_VALUE = "1"


class GeoConfig:
    """Earth model and display rounding."""

    EARTH_RADIUS_KM = 6371.0
    DISTANCE_DECIMALS = 1
    # Distances below this are shown in meters in the provider list
    METERS_DISPLAY_THRESHOLD_KM = 1.0
