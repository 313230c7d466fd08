"""
Exchange binding parsing.

Turns the ``--exchange`` option value into (exchange, routing key) pairs::

    myexchange                            # all messages in a single exchange
    myexchange1=mykey1                    # messages with a routing key
    myexchange1=mykey1,myexchange1=mykey2 # several routing keys in one exchange
    myexchange1,myexchange2               # all messages in several exchanges
    myexchange1,myexchange2=mykey2        # mixed
"""

from pydantic import BaseModel, ConfigDict, Field

from coyote.errors import ConfigurationError

WILDCARD_ROUTING_KEY = "#"

BINDING_FORMAT_HINT = (
    "valid values are ['a=x' 'a,b' 'a=x,b=y' 'a,b=y'] "
    "where a and b are exchanges, x and y are routing keys"
)


class Binding(BaseModel):
    """A topic exchange and the routing key pattern the interceptor queue listens on."""

    model_config = ConfigDict(frozen=True)

    exchange: str = Field(..., min_length=1, description="Topic exchange name")
    routing_key: str = Field(
        default=WILDCARD_ROUTING_KEY, min_length=1, description="Routing key pattern"
    )

    def __str__(self) -> str:
        return f"{self.exchange}={self.routing_key}"


def parse_bindings(value: str) -> list[Binding]:
    """
    Parse a comma separated list of ``exchange[=routing_key]`` combinations.

    Either every combination is valid and all of them are returned, or a
    ConfigurationError is raised and nothing is registered.

    Args:
        value: Raw option value, e.g. ``"a,b=y"``

    Returns:
        list[Binding]: Parsed bindings in the order they were given

    Raises:
        ConfigurationError: If any combination is malformed
    """
    bindings: list[Binding] = []
    for combination in value.split(","):
        pair = combination.split("=")
        if len(pair) == 1:
            if not pair[0]:
                raise ConfigurationError("exchange name can not be empty")
            bindings.append(Binding(exchange=pair[0]))
        elif len(pair) == 2:
            if not pair[0]:
                raise ConfigurationError("exchange name can not be empty")
            if not pair[1]:
                raise ConfigurationError("routing key can not be empty when '=' is provided")
            bindings.append(Binding(exchange=pair[0], routing_key=pair[1]))
        else:
            raise ConfigurationError(BINDING_FORMAT_HINT)
    return bindings
