"""
Parameters of the mortar mapper.

Parameters are grouped as in the mapper itself: point projection, the
Newton-Raphson schemes (interior and boundary), bisection, quadrature,
patch coupling penalties, Dirichlet conditions and the consistency check.
Every group has defaults so that MapperConfig() is a working setup for
meshes that are geometrically close.

Configurations can be written in YAML:

    projection:
      max_projection_distance: 1.0e-2
      num_refinement_for_initial_guess: 10
    newton_raphson:
      max_num_iterations: 20
      tolerance: 1.0e-6
    integration:
      num_gp_triangle: 16
      num_gp_quad: 25
    patch_coupling:
      disp_penalty: 1.0e3
      rot_penalty: 1.0e2
    dirichlet_bcs:
      is_dirichlet_bcs: false

and loaded with load_config(path). Missing groups and keys keep their
defaults; unknown groups or keys are rejected.
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .exceptions import ConfigurationError
from .quadrature.gauss import points_per_direction

TIE_BREAK_RULES = ("last", "nearest")


@dataclass
class ProjectionProperties:
    """
    Attributes:
        max_projection_distance: Largest accepted distance between a node and
            its projection; also the inflation of the patch bounding boxes
        num_refinement_for_initial_guess: Samples per direction for the
            Newton-Raphson initial guess
        max_distance_for_projected_points_on_different_patches: Two
            projections of one node on different patches are both kept when
            they are closer than this (patch seams)
        num_samples_forced_projection: Samples per direction of the
            brute-force projection of the second pass
        forced_projection_tie_break: Which projected neighbour seeds the
            brute-force projection, "last" found or "nearest"
    """
    max_projection_distance: float = 1e-2
    num_refinement_for_initial_guess: int = 10
    max_distance_for_projected_points_on_different_patches: float = 1e-3
    num_samples_forced_projection: int = 200
    forced_projection_tie_break: str = "last"

    def validate(self):
        _check_positive(self, "max_projection_distance",
                        "max_distance_for_projected_points_on_different_patches",
                        "num_refinement_for_initial_guess", "num_samples_forced_projection")
        if self.forced_projection_tie_break not in TIE_BREAK_RULES:
            raise ConfigurationError(
                f"forced_projection_tie_break must be one of {TIE_BREAK_RULES}, "
                f"got {self.forced_projection_tie_break!r}"
            )


@dataclass
class NewtonRaphsonParameters:
    max_num_iterations: int = 20
    tolerance: float = 1e-6

    def validate(self):
        _check_positive(self, "max_num_iterations", "tolerance")


@dataclass
class NewtonRaphsonBoundaryParameters:
    max_num_iterations: int = 20
    tolerance: float = 1e-6

    def validate(self):
        _check_positive(self, "max_num_iterations", "tolerance")


@dataclass
class BisectionParameters:
    max_num_iterations: int = 40
    tolerance: float = 1e-6

    def validate(self):
        _check_positive(self, "max_num_iterations", "tolerance")


@dataclass
class IntegrationParameters:
    """Total number of Gauss points of the triangle and quadrilateral rules."""
    num_gp_triangle: int = 16
    num_gp_quad: int = 25

    def validate(self):
        for name in ("num_gp_triangle", "num_gp_quad"):
            try:
                points_per_direction(getattr(self, name))
            except ValueError as exc:
                raise ConfigurationError(f"{name}: {exc}") from exc


@dataclass
class PatchCouplingParameters:
    """
    Penalty factors of the weak continuity conditions between patches.

    Patch coupling is active when either factor is positive or when the
    factors are computed automatically from the interface element lengths.
    """
    disp_penalty: float = 0.0
    rot_penalty: float = 0.0
    is_automatic_penalty_factors: bool = False

    def validate(self):
        if self.disp_penalty < 0 or self.rot_penalty < 0:
            raise ConfigurationError("Patch coupling penalties must be non-negative")

    @property
    def is_active(self) -> bool:
        return self.disp_penalty > 0 or self.rot_penalty > 0 or self.is_automatic_penalty_factors


@dataclass
class DirichletBCParameters:
    is_dirichlet_bcs: bool = False

    def validate(self):
        pass


@dataclass
class ConsistencyCheckParameters:
    enabled: bool = True
    tolerance: float = 1e-6

    def validate(self):
        _check_positive(self, "tolerance")


def _check_positive(group, *names):
    for name in names:
        value = getattr(group, name)
        if not value > 0:
            raise ConfigurationError(
                f"{type(group).__name__}.{name} must be positive, got {value}"
            )


@dataclass
class MapperConfig:
    """All parameters of an IGAMortarMapper."""
    projection: ProjectionProperties = field(default_factory=ProjectionProperties)
    newton_raphson: NewtonRaphsonParameters = field(default_factory=NewtonRaphsonParameters)
    newton_raphson_boundary: NewtonRaphsonBoundaryParameters = field(
        default_factory=NewtonRaphsonBoundaryParameters)
    bisection: BisectionParameters = field(default_factory=BisectionParameters)
    integration: IntegrationParameters = field(default_factory=IntegrationParameters)
    patch_coupling: PatchCouplingParameters = field(default_factory=PatchCouplingParameters)
    dirichlet_bcs: DirichletBCParameters = field(default_factory=DirichletBCParameters)
    consistency_check: ConsistencyCheckParameters = field(
        default_factory=ConsistencyCheckParameters)

    def validate(self) -> "MapperConfig":
        for group in fields(self):
            getattr(self, group.name).validate()
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MapperConfig":
        """
        Build a configuration from nested dictionaries.

        Raises:
            ConfigurationError: Unknown group or key, or invalid value
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")
        groups = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(groups)
        if unknown:
            raise ConfigurationError(f"Unknown configuration groups: {sorted(unknown)}")

        kwargs = {}
        for name, values in data.items():
            group_cls = groups[name].default_factory
            values = values or {}
            allowed = {f.name for f in fields(group_cls)}
            bad = set(values) - allowed
            if bad:
                raise ConfigurationError(f"Unknown keys in '{name}': {sorted(bad)}")
            kwargs[name] = group_cls(**values)
        return cls(**kwargs).validate()

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return asdict(self)


def load_config(path: Union[str, Path]) -> MapperConfig:
    """Load a MapperConfig from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f)
    return MapperConfig.from_dict(data)
