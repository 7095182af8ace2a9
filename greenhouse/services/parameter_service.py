"""Parameter configuration: monitored quantities and their threshold bands."""

from __future__ import annotations

import logging

from greenhouse.domain.entities import Parameter
from greenhouse.domain.exceptions import ConflictError, NotFoundError, ServiceError, ValidationError
from greenhouse.enums import ParameterKind
from greenhouse.schemas.requests import ParameterRequest
from infrastructure.database.repositories.parameters import ParameterRepository

logger = logging.getLogger(__name__)


class ParameterService:
    def __init__(self, parameter_repo: ParameterRepository) -> None:
        self.parameter_repo = parameter_repo

    @staticmethod
    def _check_band(request: ParameterRequest) -> None:
        if request.min_value >= request.max_value:
            raise ValidationError(
                f"min_value ({request.min_value}) must be lower than max_value ({request.max_value})",
                detail={"min_value": request.min_value, "max_value": request.max_value},
            )

    def create(self, request: ParameterRequest) -> Parameter:
        """Register a parameter.

        Raises:
            ValidationError: min_value is not below max_value.
            ConflictError: a parameter of the same kind already exists.
        """
        self._check_band(request)
        if self.parameter_repo.get_by_kind(request.kind.value) is not None:
            raise ConflictError(f"Parameter of kind '{request.kind.value}' already exists")

        parameter = self.parameter_repo.create(
            request.kind.value,
            request.name or request.kind.value,
            request.min_value,
            request.max_value,
            request.unit,
        )
        if parameter is None:
            raise ServiceError("Parameter was written but could not be read back")
        logger.info(
            "Created parameter %s (%s) band [%s, %s]",
            parameter.id,
            parameter.kind.value,
            parameter.min_value,
            parameter.max_value,
        )
        return parameter

    def get(self, parameter_id: int) -> Parameter:
        parameter = self.parameter_repo.get(parameter_id)
        if parameter is None:
            raise NotFoundError(f"Parameter {parameter_id} not found")
        return parameter

    def get_by_kind(self, kind: str) -> Parameter:
        parsed = ParameterKind.parse(kind)
        if parsed is None:
            raise ValidationError(f"Unknown parameter kind '{kind}'")
        parameter = self.parameter_repo.get_by_kind(parsed.value)
        if parameter is None:
            raise NotFoundError(f"No parameter of kind '{parsed.value}'")
        return parameter

    def list_parameters(self) -> list[Parameter]:
        return self.parameter_repo.list_all()

    def update(self, parameter_id: int, request: ParameterRequest) -> Parameter:
        """Replace the kind, name and threshold band of an existing parameter."""
        self._check_band(request)
        existing = self.get(parameter_id)
        other = self.parameter_repo.get_by_kind(request.kind.value)
        if other is not None and other.id != parameter_id:
            raise ConflictError(f"Parameter of kind '{request.kind.value}' already exists")

        self.parameter_repo.update(
            parameter_id,
            request.kind.value,
            request.name or existing.name,
            request.min_value,
            request.max_value,
            request.unit,
        )
        logger.info("Updated parameter %s band to [%s, %s]", parameter_id, request.min_value, request.max_value)
        return self.get(parameter_id)
