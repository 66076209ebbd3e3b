# services/api_service.py
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import requests

from models.annotation_models import Annotation, Comment
from models.geometry_models import FreehandShape, Shape, shape_from_dict
from utils.api_utils import APIUtils
from utils.geometry import shape_fingerprint
from utils.id_utils import new_id, now_iso

logger = logging.getLogger(__name__)

FETCH_PATH = "user/pdf-anotaion?action=get-annotations"
STORE_PATH = "user/pdf-anotaion?action=store-anotation"
DEFAULT_STROKE_WIDTH = 2.0
SERVER_SHAPE_COLOR = "#FFEB3B"


@dataclass
class SaveReport:
    """リモート保存の結果。ページ単位の成否を保持する。"""
    saved: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def canonical_shape(raw: Dict[str, Any]) -> Shape:
    """サーバーから受け取った図形を内部表現に変換する。

    線幅のキーは `stroke_width` と `strokeWidth` のどちらも受け付け、
    `stroke_width` に統一します。点は {x, y} と [x, y] のどちらでも構いません。

    Raises:
        ValueError: 図形の種類が不正な場合。
    """
    data = dict(raw)
    stroke_width = data.pop("strokeWidth", None)
    if data.get("stroke_width") is None:
        data["stroke_width"] = stroke_width if stroke_width is not None else DEFAULT_STROKE_WIDTH
    if "kind" not in data and data.get("type") in ("rect", "freehand", "line"):
        data["kind"] = data["type"]
    if "points" in data:
        data["points"] = [
            p if isinstance(p, dict) else {"x": p[0], "y": p[1]}
            for p in data.get("points") or []
        ]
    if data.get("id") is not None:
        data["id"] = str(data["id"])
    return shape_from_dict(data)


def canonical_comment(raw: Dict[str, Any]) -> Comment:
    """サーバーのコメント（`text`/`comment`、`created_at`/`createdAt` の揺れを含む）を変換する。"""
    text = raw.get("text")
    if text is None:
        text = raw.get("comment") or ""
    created_at = raw.get("created_at")
    if created_at is None:
        created_at = raw.get("createdAt") or now_iso()
    comment_id = raw.get("id")
    if comment_id is None:
        comment_id = raw.get("comment_id")
    return Comment(
        text=str(text),
        created_at=str(created_at),
        id=str(comment_id) if comment_id is not None else None,
    )


def _annotation_for_shape(page_number: int, shape: Shape) -> Annotation:
    ann_type = "freehand" if isinstance(shape, FreehandShape) else "highlight"
    return Annotation(
        id=shape.id or new_id("srv"),
        page_number=page_number,
        type=ann_type,
        color=shape.color or SERVER_SHAPE_COLOR,
        created_at=now_iso(),
        shapes=[shape],
    )


def build_page_payload(
    pdf_id: str,
    page_number: int,
    annotations: Iterable[Annotation],
    pending: Iterable[Shape] = (),
) -> Optional[Dict[str, Any]]:
    """1ページ分の保存ペイロードを組み立てる。

    図形はIDがあればIDで、無ければ指紋で重複を除きます。
    グループのハイライトとコメントは平坦化され、ペンディング中の図形も含めます。

    Args:
        pdf_id (str): 文書ID。
        page_number (int): ページ番号。
        annotations (Iterable[Annotation]): サーバー由来とローカルの注釈（この順で処理）。
        pending (Iterable[Shape]): 未確定のハイライト。

    Returns:
        Optional[Dict[str, Any]]: ペイロード。保存するものが無ければNone。
    """
    shapes: List[Dict[str, Any]] = []
    comments: List[Dict[str, Any]] = []
    seen_ids = set()
    seen_fingerprints = set()

    def add_shape(shape: Shape, color: Optional[str]) -> None:
        if shape.id:
            if shape.id in seen_ids:
                return
            seen_ids.add(shape.id)
        else:
            fp = shape_fingerprint(shape if shape.color else _with_color(shape, color))
            if fp in seen_fingerprints:
                return
            seen_fingerprints.add(fp)
        data = shape.to_dict()
        if color and "color" not in data:
            data["color"] = color
        shapes.append(data)

    for annotation in annotations:
        for shape in annotation.shapes:
            add_shape(shape, annotation.color)
        for comment in annotation.comments:
            comments.append({"text": comment.text, "created_at": comment.created_at})
    for shape in pending:
        add_shape(shape, shape.color)

    if not shapes and not comments:
        return None
    return {
        "pdf_id": pdf_id,
        "page_number": page_number,
        "shapes": shapes,
        "comments": comments,
    }


def _with_color(shape: Shape, color: Optional[str]) -> Shape:
    data = shape.to_dict()
    if color:
        data["color"] = color
    return shape_from_dict(data)


class APIService:
    """リモートの注釈APIとの連携を管理するサービスクラス。

    取得時にサーバー側の表記揺れを吸収し、保存時はページ単位で送信します。
    通信エラーはこのクラスの外に伝播しません。
    """

    def __init__(
        self,
        api_base_url: str = "",
        token: str = "",
        timeout: int = 15,
        session: Optional[requests.Session] = None,
    ) -> None:
        """APIServiceのコンストラクタ。

        Args:
            api_base_url (str): 接続先APIのベースURL（末尾の '/' を含む）。
            token (str): Bearer認証トークン。
            timeout (int): リクエストのタイムアウト秒数。
            session (Optional[requests.Session]): 使用するHTTPセッション。
        """
        self.api_config: Dict[str, Any] = {"base_url": api_base_url, "timeout": timeout}
        self.token = token
        self.session = session if session is not None else requests.Session()

    def is_available(self) -> bool:
        """APIの接続先が設定されているかどうか。"""
        return bool(self.api_config.get("base_url"))

    def _url(self, path: str) -> str:
        return f"{self.api_config['base_url']}{path}"

    def fetch_annotations(self, pdf_id: str) -> Dict[int, List[Annotation]]:
        """サーバーに保存された注釈をページごとに取得する。

        コメントを持つページは、そのページの図形をすべて束ねた1つのグループになります。

        Args:
            pdf_id (str): 文書ID。

        Returns:
            Dict[int, List[Annotation]]: ページ番号 → 注釈リスト。失敗時は空の辞書。
        """
        if not self.is_available() or not pdf_id:
            return {}
        try:
            response = APIUtils.make_api_request(
                self._url(FETCH_PATH),
                method="GET",
                params={"pdf_id": pdf_id},
                headers=APIUtils.auth_headers(self.token),
                timeout=self.api_config["timeout"],
                session=self.session,
            )
            data = APIUtils.handle_api_response(response) or {}
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("注釈の取得に失敗しました: %s", e)
            return {}

        result: Dict[int, List[Annotation]] = {}
        entries = data.get("annotations") if isinstance(data, dict) else None
        for entry in entries or []:
            try:
                page_number = int(entry["page_number"])
                shapes = [canonical_shape(s) for s in entry.get("shapes") or []]
            except (KeyError, TypeError, ValueError, IndexError) as e:
                logger.warning("不正なページデータを無視しました: %s", e)
                continue
            raw_comments = entry.get("comments") or entry.get("comments_list") or []
            comments = [canonical_comment(c) for c in raw_comments if isinstance(c, dict)]

            if comments and shapes:
                result[page_number] = [Annotation(
                    id=new_id("grp"),
                    page_number=page_number,
                    type="group",
                    color=shapes[0].color or SERVER_SHAPE_COLOR,
                    created_at=comments[0].created_at,
                    shapes=shapes,
                    comments=comments,
                )]
            elif comments:
                logger.info("ページ %d のコメントには図形が無いためグループを作成しません", page_number)
            else:
                result[page_number] = [_annotation_for_shape(page_number, s) for s in shapes]
        logger.info("サーバーから %d ページ分の注釈を取得しました", len(result))
        return result

    def save_annotations(
        self,
        pdf_id: str,
        page_count: int,
        server_annotations: Dict[int, List[Annotation]],
        local_annotations: Dict[int, List[Annotation]],
        pending: Optional[Dict[int, List[Shape]]] = None,
    ) -> SaveReport:
        """全ページの注釈をサーバーに保存する。

        あるページの送信に失敗しても、残りのページの保存は続行します。

        Args:
            pdf_id (str): 文書ID。
            page_count (int): 文書のページ数。
            server_annotations (Dict[int, List[Annotation]]): サーバーから取得済みの注釈。
            local_annotations (Dict[int, List[Annotation]]): ローカルの注釈。
            pending (Optional[Dict[int, List[Shape]]]): ページごとの未確定ハイライト。

        Returns:
            SaveReport: ページごとの結果。
        """
        report = SaveReport()
        pending = pending or {}
        if not self.is_available() or not pdf_id:
            logger.warning("APIが設定されていないため保存できません")
            return report

        for page_number in range(1, page_count + 1):
            annotations = list(server_annotations.get(page_number, [])) + \
                list(local_annotations.get(page_number, []))
            payload = build_page_payload(
                pdf_id, page_number, annotations, pending.get(page_number, [])
            )
            if payload is None:
                report.skipped.append(page_number)
                continue
            try:
                APIUtils.make_api_request(
                    self._url(STORE_PATH),
                    method="POST",
                    data=payload,
                    headers=APIUtils.auth_headers(self.token),
                    timeout=self.api_config["timeout"],
                    session=self.session,
                )
            except requests.exceptions.RequestException as e:
                logger.error("ページ %d の注釈保存に失敗しました: %s", page_number, e)
                report.failed.append(page_number)
                continue
            logger.info(
                "Saved page %d: shapes=%d comments=%d",
                page_number, len(payload["shapes"]), len(payload["comments"]),
            )
            report.saved.append(page_number)

        logger.info("Save finished (saved=%d, failed=%d)", len(report.saved), len(report.failed))
        return report
