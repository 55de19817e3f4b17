"""
Sentinel gateway service package.

The gateway lets agents call upstream APIs without ever holding the real
API keys, enforcing:
- Authentication: scoped agent tokens (or one shared token in legacy mode)
- Authorization: per-agent service scopes, IP and Origin allowlists
- Request shape: per-service method and path-prefix policy
- Rate limiting: in-process fixed windows per service and per agent
- Secret injection and deadline-bound forwarding to the upstream

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.models: service, agent and per-request data models.
- app.registry: loading and validation of service/agent definitions.
- app.auth: token to identity resolution.
- app.policy: address matching, request validation, policy enforcement.
- app.ratelimit: fixed-window counters.
- app.adapters: secret injection and upstream HTTP forwarding.
- app.domain: the admission pipeline.
"""
