from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="COUNTY_LABELS_")

    log_level: str = "INFO"

    # Overpass API (OpenStreetMap query service)
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    overpass_timeout: float = 30.0
    cache_ttl: int = 300

    # County discovery
    admin_level: str = "6"
    state_admin_level: str = "4"
    search_radius_deg: float = 0.2  # ~20km around the map center
    state_radius_deg: float = 0.1
    max_features: int = 3  # main county + 2 neighbours

    # Label placement
    min_reference_distance_m: float = 60.0
    reference_margin: float = 1.2
    clearance_fraction: float = 0.30
    relaxed_clearance_factor: float = 0.5
    min_visible_ratio: float = 0.5
    angle_step_deg: int = 3
    radial_divisions: int = 120
    grid_steps: int = 10

settings = Settings()
