from .eqtl import EQTLPipeline

__all__ = ['EQTLPipeline']
