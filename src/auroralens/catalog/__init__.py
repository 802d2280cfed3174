"""Instance catalog and engine parameter helpers."""

from .instances import (
    MAX_CONNECTIONS_FORMULA,
    SERVERLESS_CLASS,
    InstanceCandidate,
    InstanceHardware,
    build_candidates,
    candidate_from_instance_type,
    db_instance_to_ec2,
    ec2_instance_to_db,
)
from .parameters import ParameterFormulaError, evaluate_parameter

__all__ = [
    "MAX_CONNECTIONS_FORMULA",
    "SERVERLESS_CLASS",
    "InstanceCandidate",
    "InstanceHardware",
    "build_candidates",
    "candidate_from_instance_type",
    "db_instance_to_ec2",
    "ec2_instance_to_db",
    "ParameterFormulaError",
    "evaluate_parameter",
]
