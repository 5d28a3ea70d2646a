"""Mews — incremental publishing for headless-CMS sites.

Turns content events (entry/asset published or unpublished) into exactly
the page and asset updates they imply, using a persisted reverse-link graph
to find every page that embeds a changed entry.

Quick start::

    import mews

    mews.publish("sites/", "events.jsonl")        # Incremental publish
    mews.generate("sites/", "blog")                # Full generation
    mews.reconcile("sites/", "blog", "snap.json")  # Metadata reconcile

Libraries:

    kida        Template engine   (renders pages)
    patitas     Markdown parser   (markdown helper)
    httpx       HTTP client       (content API, assets, webhooks)
    pyyaml      Site config files

"""

__version__ = "0.1.0"
__all__ = [
    "PublishPipeline",
    "SiteConfig",
    "__version__",
    "generate",
    "publish",
    "reconcile",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import mews`` fast while providing a clean top-level API.
    """
    if name == "SiteConfig":
        from mews.config import SiteConfig

        return SiteConfig

    if name == "PublishPipeline":
        from mews.reactive.pipeline import PublishPipeline

        return PublishPipeline

    if name == "publish":
        from mews.app import publish

        return publish

    if name == "generate":
        from mews.app import generate

        return generate

    if name == "reconcile":
        from mews.app import reconcile

        return reconcile

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
