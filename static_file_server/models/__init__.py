from static_file_server.models.resource import NegotiationOutcome, ResolvedResource, ResourceKind
from static_file_server.models.server_config import Credentials, ServerConfig, TLSConfig, build_config
