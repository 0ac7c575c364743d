"""Posed character loops rendered to animated GIFs."""

__all__ = ["export_gif", "generate_gif"]


def export_gif(*args, **kwargs):
    from .export import export_gif as _export_gif

    return _export_gif(*args, **kwargs)


def generate_gif(*args, **kwargs):
    from .export import generate_gif as _generate_gif

    return _generate_gif(*args, **kwargs)
