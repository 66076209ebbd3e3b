from .pdf_display import PDFDisplayLabel
from .clipping_list import ClippingListWidget, CLIPPING_MIME_TYPE
from .workspace_canvas import WorkspaceCanvas
from .connector_overlay import ConnectorOverlay
from .comment_editor import CommentEditor

__all__ = [
    "PDFDisplayLabel",
    "ClippingListWidget",
    "CLIPPING_MIME_TYPE",
    "WorkspaceCanvas",
    "ConnectorOverlay",
    "CommentEditor",
]
