"""skyform - A resource lifecycle engine for declarative cloud infrastructure providers."""

from .classify import Classifier as Classifier
from .classify import ErrorClass as ErrorClass
from .classify import is_not_found as is_not_found
from .config import ProviderConfig as ProviderConfig
from .config import ProviderMeta as ProviderMeta
from .context import Context as Context
from .data import ResourceData as ResourceData
from .datasource import DataSourceType as DataSourceType
from .diff import ResourceDiff as ResourceDiff
from .errors import CloudError as CloudError
from .errors import NotFoundError as NotFoundError
from .errors import SkyformError as SkyformError
from .filters import NameValuesFilters as NameValuesFilters
from .importer import Importer as Importer
from .importer import ImportPassthrough as ImportPassthrough
from .lifecycle import Action as Action
from .lifecycle import Instance as Instance
from .provider import Provider as Provider
from .resource import Registry as Registry
from .resource import ResourceType as ResourceType
from .resource import Timeouts as Timeouts
from .resource import register_data_source as register_data_source
from .resource import register_resource_type as register_resource_type
from .schema import Attribute as Attribute
from .schema import Kind as Kind
from .state import InstanceState as InstanceState
from .tags import KeyValueTags as KeyValueTags
from .waiter import StateChangeConf as StateChangeConf
from .workspace import Workspace as Workspace
