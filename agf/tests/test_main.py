"""Unit tests for the main.py command line."""

from __future__ import annotations

from agf.config import AGFConfig
from main import build_parser


class TestParser:
    def test_defaults_follow_config(self):
        args = build_parser().parse_args([])
        assert args.mode == "loop"
        assert args.attempt_delay == AGFConfig.ATTEMPT_DELAY
        assert args.error_cooldown == AGFConfig.ERROR_COOLDOWN
        assert args.inter_batch_delay == AGFConfig.INTER_BATCH_DELAY
        assert args.log_dir == AGFConfig.LOG_DIR
        assert not args.resume

    def test_overrides(self):
        args = build_parser().parse_args([
            "--mode", "batch", "-n", "40", "--attempt-delay", "0",
            "--log-dir", "/tmp/agf", "--resume",
        ])
        assert args.mode == "batch"
        assert args.num == 40
        assert args.attempt_delay == 0.0
        assert args.log_dir == "/tmp/agf"
        assert args.resume
