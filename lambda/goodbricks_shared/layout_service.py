"""
Layout service.

Layout sources live in the layouts bucket under
``universal/{layoutId}/{version}/``; the table holds one record per version
plus a category index copy. ``latest`` is an alias that every version write
refreshes.
"""

import json
from typing import Any, Dict, Optional

from goodbricks_shared import keys
from goodbricks_shared.clients import AwsClients
from goodbricks_shared.errors import InternalError, NotFoundError
from goodbricks_shared.fanout import FanOutReader, FanOutWriter, WriteMode
from goodbricks_shared.logger import log_event
from goodbricks_shared.pagination import DEFAULT_PAGE_SIZE
from goodbricks_shared.templates import StaticTemplate, TemplateRenderer, detect_variables, get_component
from goodbricks_shared.timestamps import now_iso
from goodbricks_shared.types import Layout


LAYOUT_ROOT = 'universal/'
LATEST_VERSION = 'latest'
LAYOUT_ENTITY_TYPE = 'LAYOUT'


def layout_path(layout_id: str, version: str) -> str:
    return f'{LAYOUT_ROOT}{layout_id}/{version}/'


class LayoutService:
    """Stores, lists and renders email layouts."""

    def __init__(self, clients: AwsClients):
        self.table = clients.table
        self.layouts = clients.layouts
        self.reader = FanOutReader(self.table)

    def _bucket(self):
        if self.layouts is None:
            raise InternalError('Email layouts bucket is not configured')
        return self.layouts

    def _store_version(self, layout: Layout, source: str, correlation_id: Optional[str]) -> None:
        """Write the S3 objects, then the version record and its category copy."""
        bucket = self._bucket()
        bucket.put_object(
            layout['s3TemplatePath'],
            source,
            'text/html',
            metadata={'layoutId': layout['layoutId'], 'version': layout['version']}
        )
        bucket.put_object(f"{layout['s3Path']}layout.json", json.dumps(layout, default=str), 'application/json')

        FanOutWriter(self.table, correlation_id).write(
            layout,
            keys.layout_keys(layout['layoutId'], layout['version'], layout.get('category')),
            WriteMode.UPSERT,
            LAYOUT_ENTITY_TYPE
        )

    def create_layout(self, request: Dict[str, Any], correlation_id: str) -> Dict[str, Any]:
        """
        Create or replace a layout version.

        The HTML is rendered once with no props to check that every
        placeholder is declared. Writing a version other than ``latest``
        also refreshes the ``latest`` alias.

        Args:
            request: Validated layout request
            correlation_id: Request correlation ID for logging and tracing

        Returns:
            Dictionary with the stored layout, isFirstVersion,
            latestVersionUpdated, renderedHtml and detectedVariables

        Raises:
            ValidationError: If the HTML uses undeclared variables
        """
        layout_id = request['layoutId']
        version = request.get('version') or LATEST_VERSION
        source = request['html']

        template = StaticTemplate(source, request.get('variables'), name=layout_id)
        rendered = template.render()

        existing = self.reader.read(keys.layout_pk(layout_id), sk_prefix=keys.VERSION_PREFIX, limit=1)
        is_first_version = not existing.items

        now = now_iso()
        layout: Layout = {
            'layoutId': layout_id,
            'version': version,
            'name': request.get('name') or layout_id,
            'description': request.get('description') or '',
            'variables': template.variables,
            's3Path': layout_path(layout_id, version),
            's3TemplatePath': f'{layout_path(layout_id, version)}template.html',
            'createdAt': now,
            'lastModified': now
        }
        if request.get('category'):
            layout['category'] = request['category']

        self._store_version(layout, source, correlation_id)

        if version != LATEST_VERSION:
            alias: Layout = {
                **layout,
                'version': LATEST_VERSION,
                'aliasOf': version,
                's3Path': layout_path(layout_id, LATEST_VERSION),
                's3TemplatePath': f'{layout_path(layout_id, LATEST_VERSION)}template.html'
            }
            self._store_version(alias, source, correlation_id)

        log_event('layout_created', correlation_id, layoutId=layout_id, version=version, isFirstVersion=is_first_version)
        return {
            'layout': layout,
            'isFirstVersion': is_first_version,
            'latestVersionUpdated': True,
            'renderedHtml': rendered.html,
            'detectedVariables': detect_variables(source)
        }

    def list_layouts(
        self,
        category: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        next_token: Optional[str] = None
    ) -> Dict[str, Any]:
        """List layouts of a category from the index, or every layout id in the bucket."""
        if category:
            page = self.reader.read(keys.layout_category_pk(category), limit=limit, page_token=next_token)
            return {'category': category, 'layouts': page.items, 'count': len(page.items), 'nextToken': page.next_token}

        layout_ids = [
            prefix[len(LAYOUT_ROOT):].rstrip('/')
            for prefix in self._bucket().list_prefixes(LAYOUT_ROOT)
        ]
        layouts = [{'layoutId': layout_id} for layout_id in layout_ids if layout_id]
        return {'layouts': layouts, 'count': len(layouts), 'nextToken': None}

    def load_renderer(self, layout_id: str, version: str = LATEST_VERSION) -> StaticTemplate:
        """
        Raises:
            NotFoundError: If the layout version does not exist
        """
        record = self.reader.get(keys.layout_keys(layout_id, version)[0])
        if record is None:
            raise NotFoundError(f"Layout '{layout_id}' version '{version}' not found")

        template_path = record.get('s3TemplatePath') or f'{layout_path(layout_id, version)}template.html'
        source = self._bucket().get_object(template_path).decode('utf-8')
        return StaticTemplate(source, record.get('variables'), name=layout_id)

    def render_email(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Render a stored layout version or a built-in component with props."""
        renderer: TemplateRenderer
        if request.get('component'):
            renderer = get_component(request['component'])
            source = {'component': renderer.name}
        else:
            version = request.get('version') or LATEST_VERSION
            renderer = self.load_renderer(request['layoutId'], version)
            source = {'layoutId': request['layoutId'], 'version': version}

        result = renderer.render(request.get('props'))
        return {**source, 'html': result.html, 'variables': result.variables}
