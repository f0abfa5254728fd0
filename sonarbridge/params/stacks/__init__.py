"""Stack builders — auto-registered on import."""

from sonarbridge.params.stacks import (
    cfamily,  # noqa: F401
    dotnet,  # noqa: F401
    go,  # noqa: F401
    java,  # noqa: F401
    javascript,  # noqa: F401
    python,  # noqa: F401
)
