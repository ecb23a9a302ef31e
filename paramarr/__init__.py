"""Paramarr - resolve external parameter placeholders in test specs.

Placeholders look like <name:source#key|default> and are resolved against
environment variables, files, HTTP endpoints, Vault, AWS Secrets Manager
and Kubernetes, in a fixed precedence order after the declared source.
"""

__version__ = "0.1.0"
