import logging
import uuid
from typing import List, Optional

import pycouchdb

logger = logging.getLogger(__name__)

POST_DOC_TYPE = "post"


class CouchPostsRepo:
    def __init__(self, couch_db):
        self.db = couch_db

    def list_post_docs(self) -> List[dict]:
        all_docs = [row.get("doc", row) for row in self.db.all(include_docs=True)]
        return [doc for doc in all_docs if self._is_post(doc)]

    def get_post_doc(self, post_id: str) -> Optional[dict]:
        try:
            doc = self.db.get(post_id)
        except pycouchdb.exceptions.NotFound:
            return None
        return doc if self._is_post(doc) else None

    def create_post_doc(self, data: dict) -> dict:
        doc = {**data, "_id": uuid.uuid4().hex, "type": POST_DOC_TYPE}
        saved = self.db.save(doc)
        logger.info(f"Post saved with id {saved['_id']}")
        return saved

    def save_post_doc(self, doc: dict) -> dict:
        return self.db.save(doc)

    def delete_post_doc(self, doc: dict) -> None:
        self.db.delete(doc)

    @staticmethod
    def _is_post(doc: dict | None) -> bool:
        if not doc:
            return False
        return (
            doc.get("type") == POST_DOC_TYPE
            and not doc.get("_id", "").startswith("_design/")
            and not doc.get("deleted", False)
        )
