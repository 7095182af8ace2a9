from enum import Enum


class ParameterKind(str, Enum):
    """Environmental quantity a parameter measures."""

    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    LUMINOSITY = "luminosity"
    CO2 = "co2"
    SOIL_MOISTURE = "soil_moisture"

    @classmethod
    def _missing_(cls, value: object) -> "ParameterKind | None":
        """Accept any letter case plus legacy kind names."""
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        legacy_map = {
            "temperature": cls.TEMPERATURE,
            "temperatura": cls.TEMPERATURE,
            "temp": cls.TEMPERATURE,
            "humidity": cls.HUMIDITY,
            "humidite": cls.HUMIDITY,
            "luminosity": cls.LUMINOSITY,
            "luminosite": cls.LUMINOSITY,
            "light": cls.LUMINOSITY,
            "lux": cls.LUMINOSITY,
            "co2": cls.CO2,
            "soil_moisture": cls.SOIL_MOISTURE,
            "humidite_sol": cls.SOIL_MOISTURE,
        }
        return legacy_map.get(normalized)

    @classmethod
    def parse(cls, value: object) -> "ParameterKind | None":
        """Parse a wire value, returning None for unknown kinds."""
        try:
            return cls(value)
        except ValueError:
            return None


class ViolationDirection(str, Enum):
    ABOVE_MAX = "above_max"
    BELOW_MIN = "below_min"
    WITHIN = "within"


class Severity(str, Enum):
    """Alert severity tier derived from percentage deviation."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class EquipmentCategory(str, Enum):
    VENTILATOR = "ventilator"
    HEATER = "heater"
    LIGHT = "light"
    IRRIGATION = "irrigation"

    @classmethod
    def _missing_(cls, value: object) -> "EquipmentCategory | None":
        if not isinstance(value, str):
            return None
        legacy_map = {
            "ventilateur": cls.VENTILATOR,
            "fan": cls.VENTILATOR,
            "chauffage": cls.HEATER,
            "eclairage": cls.LIGHT,
            "arrosage": cls.IRRIGATION,
        }
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return legacy_map.get(normalized)


class EquipmentState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def _missing_(cls, value: object) -> "EquipmentState | None":
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        aliases = {"active": cls.ACTIVE, "actif": cls.ACTIVE, "inactive": cls.INACTIVE, "inactif": cls.INACTIVE}
        return aliases.get(normalized)


class ActionKind(str, Enum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    ADJUST = "adjust"

    @classmethod
    def _missing_(cls, value: object) -> "ActionKind | None":
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return None


class ActionStatus(str, Enum):
    """Lifecycle of an action: pending, then exactly one terminal state."""

    PENDING = "pending"
    EXECUTED = "executed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ActionStatus.PENDING


class ServiceRole(str, Enum):
    """Which half of the pipeline a process runs."""

    ENVIRONMENT = "environment"
    CONTROL = "control"
    ALL = "all"
