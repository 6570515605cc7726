"""Request, provider spec and secret validation."""

import logging

from pydantic import ValidationError

from metalprov.errors import ConfigurationError, InvalidArgumentError, MissingPayloadError
from metalprov.metal.assemble import USER_DATA_KEY
from metalprov.models.provider_spec import ProviderSpec
from metalprov.models.request import CreateMachineRequest, MachineClass, MachineSecret


logger = logging.getLogger(__name__)


def validate_create_request(request: CreateMachineRequest, provider_name: str):
    """Reject empty requests and requests meant for another provider."""
    if request is None or request.machine is None or request.machine_class is None or request.secret is None:
        raise InvalidArgumentError("received empty request")
    if request.machine_class.provider != provider_name:
        raise InvalidArgumentError(
            f"requested provider '{request.machine_class.provider}' is not supported "
            f"by the driver '{provider_name}'",
            machine=request.machine.name,
        )


def decode_provider_spec(machine_class: MachineClass, secret: MachineSecret) -> ProviderSpec:
    """Decode the provider spec of a machine class and check its secret.

    Nothing has been written to the control plane when this fails.
    """
    try:
        provider_spec = ProviderSpec.model_validate(machine_class.provider_spec)
    except ValidationError as e:
        errors = "; ".join(
            f"providerSpec.{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"failed to validate provider spec: {errors}", phase="validate") from e

    if USER_DATA_KEY not in secret.data:
        raise MissingPayloadError(f"failed to find {USER_DATA_KEY} in machine secret", phase="validate")
    return provider_spec
