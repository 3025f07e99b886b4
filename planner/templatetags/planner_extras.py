from django import template

from ..api import STATUS_COMPLETED, image_url

register = template.Library()


@register.filter
def status_class(status):
    return 'badge-completed' if status == STATUS_COMPLETED else 'badge-active'


@register.filter
def iiif(image_id, width=300):
    return image_url(image_id, width)


@register.simple_tag(takes_context=True)
def query_url(context, **params):
    """
    Current path with the query string changed: a param set to None or ''
    is removed, anything else replaces the current value.
    """
    request = context['request']
    query = request.GET.copy()
    for key, value in params.items():
        if value is None or value == '':
            query.pop(key, None)
        else:
            query[key] = value
    encoded = query.urlencode()
    return f"{request.path}?{encoded}" if encoded else request.path
