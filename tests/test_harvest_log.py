from gbp_harvest.harvest_log import audit, log_step, shorten_log


#============================================
def test_log_step_prints_component_and_level(capsys) -> None:
    log_step("Batch done", "SUCCESS", component="HARVEST")
    out = capsys.readouterr().out
    assert "[HARVEST]" in out
    assert "✅" in out
    assert "Batch done" in out


#============================================
def test_audit_writes_console_and_table(db, capsys) -> None:
    audit(db, "Locations cleaned up")
    assert db.log_messages() == ["Locations cleaned up"]
    assert db.log[0]['logged_at'].tzinfo is not None
    assert "Locations cleaned up" in capsys.readouterr().out


#============================================
def test_shorten_log_keeps_newest_entries(db) -> None:
    for number in range(10):
        audit(db, f"entry {number}")

    assert shorten_log(db, max_rows=4) == 6
    assert db.log_messages() == ["entry 6", "entry 7", "entry 8", "entry 9"]
    assert shorten_log(db, max_rows=4) == 0
