from rest_framework.renderers import JSONRenderer


class EnvelopeJSONRenderer(JSONRenderer):
    """Wrap every JSON payload as ``{"success": true, "data": ...}``.

    Error bodies produced by ``schoolerp.exceptions.problem_exception_handler``
    are already enveloped and pass through untouched.
    """

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = (renderer_context or {}).get('response')
        if response is not None and response.status_code == 204:
            return b''
        if not (isinstance(data, dict) and data.get('success') is False and 'error' in data):
            data = {'success': True, 'data': data}
        return super().render(data, accepted_media_type, renderer_context)
