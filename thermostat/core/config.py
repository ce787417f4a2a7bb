from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Heating Thermostat"

    # Control defaults (used until start() overrides them)
    default_target_temperature: float = 22.0
    default_hysteresis: float = 1.5
    poll_interval_seconds: float = 1.0
    max_consecutive_errors: int = 5
    min_actuation_interval_seconds: float = 30.0

    # 0 disables the timeout on sensor reads
    sensor_timeout_seconds: float = 5.0

    # Start the control loop when the API comes up
    autostart: bool = True

    # Sensor mode: "auto" probes 1-Wire, "sim" forces the random walk
    sensor_mode: str = "auto"
    w1_devices_path: str = "/sys/bus/w1/devices"
    w1_sensor_prefix: str = "28-"
    sim_start_temperature: float = 22.0

    # Relay mode: "auto" | "rpigpio" | "sysfs" | "sim"
    relay_mode: str = "auto"
    relay_gpio_pin: int = 17
    relay_active_low: bool = True   # most opto-isolated relay boards energize on LOW
    gpio_sysfs_path: str = "/sys/class/gpio"

    # Logging
    log_file: str = Field(default="thermostat.log")
    log_level: str = "INFO"

    # HTTP
    host: str = "127.0.0.1"
    port: int = 3001


settings = Settings()
