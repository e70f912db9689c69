from stackweave.providers.application import ProcessProvisioner
from stackweave.providers.base import AWSProvisioner, Provisioner
from stackweave.providers.construct import ConstructProvisioner
from stackweave.providers.elasticache import CacheProvisioner
from stackweave.providers.lambda_function import FunctionProvisioner
from stackweave.providers.registry import ProvisionerRegistry, default_registry
from stackweave.providers.secrets import SecretProvisioner
from stackweave.providers.sns import TopicProvisioner
from stackweave.providers.sqs import QueueProvisioner
from stackweave.providers.stack import StackProvisioner

__all__ = [
    "AWSProvisioner",
    "CacheProvisioner",
    "ConstructProvisioner",
    "FunctionProvisioner",
    "ProcessProvisioner",
    "Provisioner",
    "ProvisionerRegistry",
    "QueueProvisioner",
    "SecretProvisioner",
    "StackProvisioner",
    "TopicProvisioner",
    "default_registry",
]
