from common.config import get_settings
from scripts.add_indexes import INDEXES, add_indexes
from scripts.check_indexes import check_indexes


def test_add_indexes_is_idempotent(capsys):
    url = get_settings().database_url

    add_indexes(url)
    add_indexes(url)

    assert capsys.readouterr().out.count("Indexes added successfully.") == 2


def test_check_indexes_lists_reservation_indexes(capsys):
    add_indexes(get_settings().database_url)

    check_indexes(get_settings().database_url)

    out = capsys.readouterr().out
    for name in INDEXES:
        assert name in out
