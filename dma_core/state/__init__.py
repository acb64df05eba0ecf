from dma_core.state.context import AppContext, WRITER_ROLES

__all__ = ["AppContext", "WRITER_ROLES"]
