from werkzeug.datastructures import ImmutableMultiDict


def _form_value(value):
    if isinstance(value, bool):
        return "y" if value else "false"
    return str(value)


def form_from_json(form_cls, payload):
    """
    Bind *form_cls* to a JSON body the way a browser form post would arrive:
    scalars as strings, nulls and nested values left out.
    """
    formdata = ImmutableMultiDict(
        {
            key: _form_value(value)
            for key, value in (payload or {}).items()
            if value is not None and not isinstance(value, (dict, list))
        }
    )
    return form_cls(formdata=formdata)


def form_errors(form) -> str:
    return "; ".join(
        f"{name}: {', '.join(errors)}" for name, errors in form.errors.items()
    )
