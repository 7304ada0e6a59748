from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
import yaml

from invoicer.cli import (
    _check_keyring_available,
    _init_config,
    _setup_token,
    _upsert_env_var,
    _warn_open_permissions,
    main,
)


@pytest.fixture
def invoice_yaml(tmp_path, supplier_dict):
    path = tmp_path / "inv.yaml"
    path.write_text(
        yaml.dump(
            {
                "supplier": supplier_dict,
                "customer": {"name": "Harbour Cafe"},
                "meta": {"id": "INV-7", "issue_date": "2026-10-19"},
                "items": [{"name": "Pencils", "qty": 1, "unit_price": "100.00"}],
            }
        )
    )
    return path


class TestMain:
    @patch("invoicer.cli._init_config")
    def test_init_dispatches(self, mock_init):
        main(["init"])
        mock_init.assert_called_once()

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])

    def test_build_writes_issued_file(self, invoice_yaml, tmp_path, capsys):
        main(["build", str(invoice_yaml)])
        out = capsys.readouterr().out.strip()
        assert out == str(tmp_path / "data" / "issued" / "invoice_INV-7.xml")
        assert "<cbc:ID>INV-7</cbc:ID>" in (tmp_path / "data" / "issued" / "invoice_INV-7.xml").read_text()

    def test_build_with_bad_amount_exits_1(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text(
            yaml.dump(
                {
                    "supplier": {"name": "S"},
                    "customer": {"name": "C"},
                    "items": [{"name": "x", "qty": "lots", "unit_price": 1}],
                }
            )
        )
        with pytest.raises(SystemExit, match="1"):
            main(["build", str(path)])
        assert "Error: qty: invalid amount 'lots'" in capsys.readouterr().err

    def test_missing_file_exits_1(self, tmp_path, capsys):
        with pytest.raises(SystemExit, match="1"):
            main(["build", str(tmp_path / "nope.yaml")])
        assert "Error:" in capsys.readouterr().err

    def test_malformed_settings_exits_1(self, invoice_yaml, tmp_path, capsys):
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        (config_dir / "settings.yaml").write_text("- just\n- a list\n")
        with pytest.raises(SystemExit, match="1"):
            main(["build", str(invoice_yaml)])
        assert "Error: settings must be a mapping" in capsys.readouterr().err

    def test_show_summary(self, invoice_yaml, tmp_path, capsys):
        xml_path = tmp_path / "a.xml"
        main(["build", str(invoice_yaml), "-o", str(xml_path)])
        capsys.readouterr()

        main(["show", str(xml_path)])
        out = capsys.readouterr().out
        assert "Invoice INV-7  issued 2026-10-19  due 2026-11-02" in out
        assert "From: ACME Supplies Pty Ltd" in out
        assert "To: Harbour Cafe" in out
        assert "$110.00" in out

    def test_show_as_dict(self, invoice_yaml, tmp_path, capsys):
        xml_path = tmp_path / "a.xml"
        main(["build", str(invoice_yaml), "-o", str(xml_path)])
        capsys.readouterr()

        main(["show", str(xml_path), "--as-dict", "--detail", "minimal"])
        view = json.loads(capsys.readouterr().out)
        assert view["header"]["id"] == "INV-7"
        assert view["supplier"]["details"] == []

    def test_show_json_tree(self, invoice_yaml, tmp_path, capsys):
        xml_path = tmp_path / "a.xml"
        main(["build", str(invoice_yaml), "-o", str(xml_path)])
        capsys.readouterr()

        main(["show", str(xml_path), "--json"])
        tree = json.loads(capsys.readouterr().out)
        assert tree["LegalMonetaryTotal"]["PayableAmount"] == {"_text": "110.00", "$currencyID": "AUD"}

    def test_export_xml_locally(self, invoice_yaml, tmp_path, capsys):
        out = tmp_path / "out.xml"
        main(["export", str(invoice_yaml), "--as", "xml", "-o", str(out)])
        assert capsys.readouterr().out.strip() == str(out)
        assert out.read_text(encoding="utf-8").startswith("<?xml")

    @patch("invoicer.services.invoicing.send_invoice", return_value={})
    def test_export_send(self, mock_send, invoice_yaml, capsys):
        main(["export", str(invoice_yaml), "--as", "pdf", "--to", "jane@example.com", "--language", "fr"])
        assert "Sent invoice INV-7 to jane@example.com" in capsys.readouterr().out
        args, kwargs = mock_send.call_args
        assert args[0] == "jane@example.com"
        assert kwargs["output_type"] == "pdf"
        assert kwargs["language"] == "fr"

    def test_export_unknown_language(self, invoice_yaml):
        with pytest.raises(SystemExit):
            main(["export", str(invoice_yaml), "--language", "xx"])


class TestInitConfig:
    def test_copies_templates(self, tmp_path, capsys):
        with patch("builtins.input", return_value="n"):
            _init_config()
        config_dir = tmp_path / "config"
        assert (config_dir / "settings.yaml.example").is_file()
        assert (config_dir / "parties" / "acme-supplies.yaml.example").is_file()
        assert (config_dir / "invoices" / "example.yaml.example").is_file()
        assert (tmp_path / "data").is_dir()
        assert "created:" in capsys.readouterr().out

    def test_existing_files_untouched(self, tmp_path, capsys):
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        (config_dir / "settings.yaml.example").write_text("custom")
        with patch("builtins.input", side_effect=EOFError):
            _init_config()
        assert (config_dir / "settings.yaml.example").read_text() == "custom"
        assert "exists:" in capsys.readouterr().out

    def test_offers_token_setup(self, tmp_path):
        with (
            patch("builtins.input", return_value="y"),
            patch("invoicer.cli._setup_token") as mock_setup,
        ):
            _init_config()
        mock_setup.assert_called_once_with(tmp_path / "config")


class TestSetupToken:
    def test_skipped_when_empty(self, tmp_path):
        with patch("invoicer.cli.getpass.getpass", return_value=""):
            assert _setup_token(tmp_path) is False

    def test_keyring_preferred(self, tmp_path):
        with (
            patch("invoicer.cli.getpass.getpass", return_value="tok"),
            patch("invoicer.cli._check_keyring_available", return_value=True),
            patch("invoicer.config._set_keyring_token", return_value=True) as mock_set,
        ):
            assert _setup_token(tmp_path) is True
        mock_set.assert_called_once_with("tok")
        assert not (tmp_path / ".env").exists()

    def test_env_file_fallback(self, tmp_path):
        with (
            patch("invoicer.cli.getpass.getpass", return_value="tok"),
            patch("invoicer.cli._check_keyring_available", return_value=False),
        ):
            assert _setup_token(tmp_path) is True
        assert "INVOICER_API_TOKEN='tok'" in (tmp_path / ".env").read_text()


class TestEnvHelpers:
    def test_upsert_creates_and_updates(self, tmp_path):
        env_file = tmp_path / "sub" / ".env"
        _upsert_env_var(env_file, "KEY", "one")
        _upsert_env_var(env_file, "KEY", "two")
        content = env_file.read_text()
        assert "KEY='two'" in content
        assert "one" not in content

    def test_warn_open_permissions(self, tmp_path, capsys):
        env_file = tmp_path / ".env"
        env_file.write_text("X=1")
        env_file.chmod(0o644)
        _warn_open_permissions(env_file)
        assert "readable by other users" in capsys.readouterr().out

    def test_no_warning_when_private(self, tmp_path, capsys):
        env_file = tmp_path / ".env"
        env_file.write_text("X=1")
        env_file.chmod(0o600)
        _warn_open_permissions(env_file)
        assert capsys.readouterr().out == ""


class TestKeyringCheck:
    def test_fail_backend_is_unavailable(self):
        from keyring.backends.fail import Keyring as FailKeyring

        with patch("keyring.get_keyring", return_value=FailKeyring()):
            assert _check_keyring_available() is False

    def test_real_backend_is_available(self):
        with patch("keyring.get_keyring", return_value=MagicMock()):
            assert _check_keyring_available() is True
