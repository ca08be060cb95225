from dashsync.cli import parse_args


def test_parse_args_defaults():
    args = parse_args(["snapshot"])
    assert args.command == "snapshot"
    assert args.config_dir == "./config"
    assert args.overlay_config_dir is None
    assert args.role == "MANAGER"
    assert args.duration is None


def test_parse_args_accepts_overlay_and_duration():
    args = parse_args(["watch", "--overlay-config-dir", "config/live", "--duration", "2.5"])
    assert args.overlay_config_dir == "config/live"
    assert args.duration == 2.5
