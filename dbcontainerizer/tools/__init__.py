"""Subprocess and network adapters for the collaborators the pipeline drives."""
from .dotnet import DotNet
from .efcpt import EfCorePowerTools
from .http import UrlFetch
from .sqlpackage import SqlPackage
from .sqlserver import SqlServer, parse_rows
