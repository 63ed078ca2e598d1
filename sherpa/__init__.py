# Re-export some core dependencies from other packages that will
# be used across projects
from fastapi import Depends as Depends

from sherpa.app import AppController as AppController
from sherpa.client import (
    BootstrapRecord as BootstrapRecord,
    ClientComponentRegistry as ClientComponentRegistry,
    NavigationClient as NavigationClient,
    NavigationState as NavigationState,
)
from sherpa.config import ConfigBase as ConfigBase
from sherpa.context import (
    RenderContext as RenderContext,
    RenderContextBuilder as RenderContextBuilder,
)
from sherpa.controller import ControllerBase as ControllerBase
from sherpa.dom import MarkupDocument as MarkupDocument
from sherpa.exceptions import APIException as APIException
from sherpa.layouts import (
    LayoutDescriptor as LayoutDescriptor,
    LayoutResolver as LayoutResolver,
)
from sherpa.pipeline import RenderPipeline as RenderPipeline
from sherpa.registry import ViewRegistry as ViewRegistry
from sherpa.render import (
    LinkAttribute as LinkAttribute,
    MetaAttribute as MetaAttribute,
    Metadata as Metadata,
    RenderBase as RenderBase,
    ScriptAttribute as ScriptAttribute,
    ThemeColorMeta as ThemeColorMeta,
)
from sherpa.renderer import (
    CallableRenderer as CallableRenderer,
    ComponentRenderer as ComponentRenderer,
)
from sherpa.reporting import ErrorReporter as ErrorReporter
