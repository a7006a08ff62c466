"""
Email template rendering.

Two renderer variants share one interface:

- StaticTemplate: stored HTML with ``{{variable}}`` placeholders and an
  explicit list of the variables it may use.
- CompiledComponent: a registered Python callable that builds the HTML from
  props, with its declared variables.

No template source is ever evaluated as code. A prop that is not supplied
renders as its ``{{name}}`` placeholder, so the output can be registered as
an SES template and filled per recipient later.
"""

import html
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence

from goodbricks_shared.errors import NotFoundError, ValidationError


PLACEHOLDER_PATTERN = re.compile(r'\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}')

# Fields available for per-recipient personalization
RECIPIENT_FIELDS = ('firstName', 'lastName', 'email', 'organization')


class RenderResult(NamedTuple):
    html: str
    variables: List[str]


def detect_variables(source: str) -> List[str]:
    """Placeholder names used in ``source``, in order of first appearance."""
    return list(dict.fromkeys(PLACEHOLDER_PATTERN.findall(source or '')))


def _placeholder(name: str) -> str:
    return '{{' + name + '}}'


def _prop_values(variables: Sequence[str], props: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    props = props or {}
    values = {}
    for name in variables:
        value = props.get(name)
        values[name] = _placeholder(name) if value is None else html.escape(str(value))
    return values


def personalize(source: str, values: Mapping[str, Any], escape: bool = True) -> str:
    """
    Fill placeholders for one recipient.

    Only the names present in ``values`` are replaced. Values are HTML-escaped
    unless ``escape`` is False, which plain-text fields such as subjects need.
    """
    def replace(match: 're.Match') -> str:
        name = match.group(1)
        if name not in values:
            return match.group(0)
        value = '' if values[name] is None else str(values[name])
        return html.escape(value) if escape else value

    return PLACEHOLDER_PATTERN.sub(replace, source)


class TemplateRenderer:
    """Interface shared by every renderer variant."""

    name: str = ''
    variables: List[str] = []

    def render(self, props: Optional[Mapping[str, Any]] = None) -> RenderResult:
        raise NotImplementedError


class StaticTemplate(TemplateRenderer):
    """
    HTML with ``{{variable}}`` placeholders.

    Raises:
        ValidationError: If the HTML uses a placeholder that is not declared
    """

    def __init__(self, source: str, variables: Optional[Iterable[str]] = None, name: str = 'static'):
        if not isinstance(source, str) or not source.strip():
            raise ValidationError('Template html is required', {'field': 'html'})

        used = detect_variables(source)
        declared = list(dict.fromkeys(variables)) if variables is not None else used
        undeclared = [variable for variable in used if variable not in declared]
        if undeclared:
            raise ValidationError(
                'Template uses undeclared variables',
                {'field': 'variables', 'undeclared': undeclared}
            )

        self.name = name
        self.source = source
        self.variables = declared

    def render(self, props: Optional[Mapping[str, Any]] = None) -> RenderResult:
        values = _prop_values(self.variables, props)
        rendered = PLACEHOLDER_PATTERN.sub(lambda match: values[match.group(1)], self.source)
        return RenderResult(rendered, list(self.variables))


class CompiledComponent(TemplateRenderer):
    """A registered Python callable producing HTML from escaped props."""

    def __init__(self, name: str, build: Callable[[Dict[str, str]], str], variables: Sequence[str]):
        self.name = name
        self.build = build
        self.variables = list(variables)

    def render(self, props: Optional[Mapping[str, Any]] = None) -> RenderResult:
        return RenderResult(self.build(_prop_values(self.variables, props)), list(self.variables))


def _welcome(p: Dict[str, str]) -> str:
    return (
        '<html><head><meta charset="utf-8" />'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0" />'
        f'<title>Welcome to {p["company"]}</title></head>'
        '<body style="font-family: Arial, sans-serif; color: #333; padding: 20px">'
        f'<h1 style="color: #111">Assalamu alaikum, {p["firstName"]}!</h1>'
        f"<p>Welcome to {p['company']}. We're excited to have you with us.</p>"
        '</body></html>'
    )


def _fundraising(p: Dict[str, str]) -> str:
    return (
        '<html><head><meta charset="utf-8" />'
        f'<title>{p["campaignName"]}</title></head>'
        '<body style="background-color: #f6f9fc; margin: 0; padding: 0">'
        '<div style="max-width: 640px; margin: 0 auto; background-color: #ffffff; padding: 24px">'
        f'<p style="font-size: 12px; color: #64748b">{p["orgName"]}</p>'
        f'<h2 style="font-size: 20px">{p["campaignName"]}</h2>'
        f'<p>Dear {p["firstName"]},</p>'
        f'<p>Help us reach our goal of ${p["goalAmount"]}. '
        f'Together we have raised ${p["raisedAmount"]} so far.</p>'
        f'<p style="font-weight: bold">{p["matchNote"]}</p>'
        f'<a href="{p["donateUrl"]}" style="display: inline-block; background-color: #111827; '
        'color: #ffffff; padding: 12px 24px; border-radius: 8px; text-decoration: none">'
        'Donate now</a>'
        '</div></body></html>'
    )


def _impact_report(p: Dict[str, str]) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; background-color: #ffffff">'
        '<div style="padding: 40px 20px; text-align: center">'
        f'<h1 style="color: #333; font-size: 28px">{p["orgName"]}</h1>'
        f'<p style="font-size: 14px; text-transform: uppercase; color: #666">{p["reportYear"]} Impact Report</p>'
        f'<h2 style="font-size: 32px; font-weight: 500">Dear {p["firstName"]},</h2>'
        '<p style="font-size: 18px; line-height: 1.6">Together, we have made a real difference in our community.</p>'
        '</div>'
        '<div style="margin: 20px; padding: 30px; background-color: #fef3e7; border-radius: 15px; text-align: center">'
        '<h3 style="color: #a63b00; font-size: 24px">Lives Impacted</h3>'
        f'<div style="font-size: 60px; font-weight: bold; color: #333">{p["livesImpacted"]}</div>'
        '</div>'
        '<div style="margin: 20px; padding: 30px; background-color: #ecfdf5; border-radius: 15px; text-align: center">'
        '<h3 style="color: #065f46; font-size: 24px">Total Volunteer Hours</h3>'
        f'<div style="font-size: 60px; font-weight: bold; color: #333">{p["volunteerHours"]}</div>'
        '</div>'
        '<div style="padding: 30px 20px; text-align: center">'
        f'<a href="{p["reportUrl"]}" style="display: inline-block; background-color: #333; color: #fff; '
        'padding: 15px 30px; text-decoration: none; border-radius: 25px">View Full Impact Report</a>'
        '</div></div>'
    )


BUILTIN_COMPONENTS: Dict[str, CompiledComponent] = {
    'welcome': CompiledComponent('welcome', _welcome, ['firstName', 'company']),
    'fundraising': CompiledComponent(
        'fundraising',
        _fundraising,
        ['firstName', 'orgName', 'campaignName', 'donateUrl', 'goalAmount', 'raisedAmount', 'matchNote']
    ),
    'impact-report': CompiledComponent(
        'impact-report',
        _impact_report,
        ['firstName', 'orgName', 'reportYear', 'livesImpacted', 'volunteerHours', 'reportUrl']
    ),
}


def get_component(name: str) -> CompiledComponent:
    """
    Look up a built-in component by name.

    Raises:
        NotFoundError: If no component is registered under ``name``
    """
    component = BUILTIN_COMPONENTS.get(name)
    if component is None:
        raise NotFoundError(f"Email component '{name}' not found")
    return component
