from greenhouse.blueprints.api.actions import actions_api
from greenhouse.blueprints.api.equipment import equipment_api
from greenhouse.blueprints.api.health import health_api
from greenhouse.blueprints.api.measurements import measurements_api
from greenhouse.blueprints.api.parameters import parameters_api

__all__ = ["actions_api", "equipment_api", "health_api", "measurements_api", "parameters_api"]
