"""Endpoint detail lookup tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from api_test_agent.core.errors import ExecutionError

if TYPE_CHECKING:
    from api_test_agent.tools.arguments import EndpointLookupArgs
    from api_test_agent.tools.registry import ToolContext


def get_endpoints_details(args: EndpointLookupArgs, context: ToolContext) -> Mapping[str, Any]:
    """
    Return the stored details of the requested endpoints.

    Requested endpoints that are not in the project catalogue are left out.

    Returns:
        {"endpoints": [{"method", "path", "description", "requires_auth", "auth_type", ...}]}
    """
    if context.endpoints is None or not context.project_id:
        catalogue = []
    else:
        try:
            catalogue = context.endpoints.load_endpoints(context.project_id)
        except (OSError, ValueError) as exc:
            raise ExecutionError(f"failed to load endpoints: {exc}") from exc

    results = []
    for ref in args.endpoints:
        for endpoint in catalogue:
            if endpoint.matches(ref.method, ref.path):
                results.append(endpoint.to_dict())
                break
    context.emit("subtle", f"Loaded details for {len(results)} endpoint(s)")
    return {"endpoints": results}


__all__ = ["get_endpoints_details"]
