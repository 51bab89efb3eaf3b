"""
Application entry point — parses the command line and runs one download.

Composition root: merges CLI flags over environment settings, configures
structlog, and hands the validated DownloadOptions to the pipeline inside a
LoggingExecutionContext.

Exit codes:
  0  certificates saved, help/version shown, or a mandatory option missing
  1  configuration error or failed download
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

import structlog
from pydantic import ValidationError

from cert_downloader import __version__
from cert_downloader.config import DEFAULT_BASE_URI, AppSettings
from cert_downloader.pipeline import report_failure, run_download
from cert_downloader.railway import LoggingExecutionContext

PROG = "wechatpay-certificate-downloader"


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for human-readable console logging on stderr.

    stdout is reserved for the certificate report.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        # Resolve sys.stderr per logger so redirected streams are honoured.
        logger_factory=lambda *_: structlog.PrintLogger(sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Download, decrypt and verify the WeChat Pay platform certificates.",
        add_help=False,
    )
    parser.add_argument("-m", "--mchid", dest="merchant_id", metavar="<merchantId>",
                        help="merchant ID")
    parser.add_argument("-s", "--serialno", dest="serial_no", metavar="<serialNo>",
                        help="serial number of the merchant certificate")
    parser.add_argument("-f", "--privatekey", dest="private_key_path",
                        metavar="<privateKeyFilePath>", help="merchant private key file")
    parser.add_argument("-k", "--key", dest="api_key", metavar="<apiv3Key>",
                        help="APIv3 key")
    parser.add_argument("-o", "--output", dest="output_dir", metavar="[outputFilePath]",
                        help="directory to save the certificates in, defaults to the "
                             "system temporary directory")
    parser.add_argument("-u", "--baseuri", dest="base_uri", metavar="[baseUri]",
                        help=f"API endpoint, defaults to {DEFAULT_BASE_URI}")
    parser.add_argument("-V", "--version", action="store_true",
                        help="print version information and exit")
    parser.add_argument("-h", "--help", action="store_true",
                        help="show this help message and exit")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Parse flags, validate options and run the download."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.help:
        parser.print_help()
        return 0
    if args.version:
        print(__version__)  # noqa: T201
        return 0

    overrides = {
        name: value
        for name, value in vars(args).items()
        if name not in ("help", "version") and value is not None
    }
    try:
        settings = AppSettings(**overrides)
    except ValidationError as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        return 1

    if settings.missing_mandatory():
        parser.print_help()
        return 0

    configure_structlog(settings.log_level)
    log = structlog.get_logger()
    log.info("app.starting", version=__version__, log_level=settings.log_level)

    options = settings.to_options()
    if options.is_failure():
        print(f"FATAL: {options.error().message}", file=sys.stderr)  # noqa: T201
        return 1

    ctx = LoggingExecutionContext(operation="PlatformCertificateDownload")
    result = ctx.execute(
        lambda: run_download(
            options.value(),
            timeout=settings.http_timeout_seconds,
            trace=settings.http_trace,
        )
    )
    if result.is_failure():
        report_failure(result.error(), sys.stdout)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
