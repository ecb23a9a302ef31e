"""Backend adapters.

Importing this package registers every built-in source variant with
SourceRegistry. Registration order is irrelevant; resolution order comes
from SOURCE_PRECEDENCE.
"""

from paramarr.sources.aws import AwsSecretsSource
from paramarr.sources.env import EnvSource
from paramarr.sources.file import FileSource
from paramarr.sources.http import HttpSource
from paramarr.sources.k8s import K8sSource
from paramarr.sources.registry import (
    EMPTY_REGISTRATION,
    SOURCE_PRECEDENCE,
    SourceRegistration,
    SourceRegistry,
    SourceType,
    SourceVariant,
    build_registration,
)
from paramarr.sources.vault import VaultSource

SourceRegistry.register(SourceType.ENV.value, EnvSource)
SourceRegistry.register(SourceType.FILE.value, FileSource)
SourceRegistry.register(SourceType.VAULT.value, VaultSource)
SourceRegistry.register(SourceType.AWS.value, AwsSecretsSource)
SourceRegistry.register(SourceType.K8S.value, K8sSource)
SourceRegistry.register(SourceType.HTTP.value, HttpSource)

__all__ = [
    "AwsSecretsSource",
    "EMPTY_REGISTRATION",
    "EnvSource",
    "FileSource",
    "HttpSource",
    "K8sSource",
    "SOURCE_PRECEDENCE",
    "SourceRegistration",
    "SourceRegistry",
    "SourceType",
    "SourceVariant",
    "VaultSource",
    "build_registration",
]
