from listing_pipeline.models.base import Base  # noqa: F401

from listing_pipeline.models.listing import Listing  # noqa: F401
