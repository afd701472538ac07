from flask import request

from predictor.errors import ValidationError


def read_json_body() -> dict:
    """Parsed JSON object from the current request, {} when the body is empty."""
    data = request.get_json(silent=True)
    if data is None:
        if request.get_data():
            raise ValidationError('Invalid JSON in request body')
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data
