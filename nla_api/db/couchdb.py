import logging

import pycouchdb

from nla_api.settings import settings

logger = logging.getLogger(__name__)


def get_couch():
    """
    Return the posts database handle, creating the database on first use.
    Called at runtime to avoid import-time connections.
    """
    couch = pycouchdb.Server(settings.couchdb_url)
    try:
        return couch.database(settings.COUCHDB_DATABASE)
    except pycouchdb.exceptions.NotFound:
        logger.info(f"Creating CouchDB database {settings.COUCHDB_DATABASE}")
        return couch.create(settings.COUCHDB_DATABASE)
