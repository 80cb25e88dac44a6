from .models import ConversionItem, ConversionOptions, ItemStatus, OutputArtifact
from .pipeline import convert_image

__all__ = ["ConversionItem", "ConversionOptions", "ItemStatus", "OutputArtifact", "convert_image"]
