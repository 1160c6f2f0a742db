"""Set images, resource requirements, selectors, service accounts and subjects in manifests."""

__version__ = "0.1.0"