"""HTTP clients for the drug-data dependencies."""

from .base import JsonApiClient
from .openfda import OpenFDAClient
from .rxnorm import RxNormClient

__all__ = ["JsonApiClient", "OpenFDAClient", "RxNormClient"]
