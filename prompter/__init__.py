"""Voice dataset builder: take segmentation and archive packaging."""

__version__ = "0.1.0"
