"""
Command-Line Interface for the Anonymous Inbox toolkit

Key management, identities, payload encryption, proof checks and an
end-to-end demonstration.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from anon_inbox import __version__, print_disclaimer
from anon_inbox.protocol.encryption import HybridCodec, generate_key_pair
from anon_inbox.protocol.exceptions import (
    DecryptionError,
    DuplicateNullifierError,
    InboxProtocolError,
    KeyStoreError,
)
from anon_inbox.protocol.identity import generate_identity
from anon_inbox.protocol.keystore import export_key_pair, import_key_pair
from anon_inbox.protocol.nullifier import current_epoch, format_epoch
from anon_inbox.protocol.proofs.verifier import check_freshness, verify_envelope
from anon_inbox.protocol.report import ReportData, Urgency
from anon_inbox.protocol.settings import PipelineConfig
from anon_inbox.protocol.types import EncryptedEnvelope, ProofEnvelope


def _fail(message: str, code: int = 1) -> None:
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(code)


def _load_config(path: Optional[str]) -> PipelineConfig:
    if path:
        return PipelineConfig.from_yaml(path).with_env_overrides()
    return PipelineConfig.from_env()


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose):
    """
    Anonymous Inbox - Proof of Concept

    Anonymous, rate-limited, end-to-end-encrypted submissions.

    ⚠️  PROOF OF CONCEPT - NOT PRODUCTION READY
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the key file here")
@click.option("--protect", is_flag=True, help="Encrypt the key file with a password")
def keygen(output, protect):
    """
    Generate a recipient key pair.

    Examples:

        anon-inbox keygen --output recipient.json --protect
    """
    password = None
    if protect:
        password = click.prompt(
            "Key file password", hide_input=True, confirmation_prompt=True
        )

    pair = generate_key_pair()
    try:
        data = export_key_pair(pair, password=password)
    except ValueError as e:
        _fail(str(e))

    if output:
        Path(output).write_text(data, encoding="utf-8")
        click.echo(click.style(f"✓ Key file written to {output}", fg="green"))
        click.echo(f"Public key: {pair.public_key}")
    else:
        click.echo(data)


@main.command()
@click.option(
    "--secret-out",
    type=click.Path(dir_okay=False),
    help="Write the identity secret (hex) to this file",
)
def identity(secret_out):
    """Generate an anonymous identity and print its commitment."""
    ident = generate_identity()
    if secret_out:
        Path(secret_out).write_text(ident.secret.to_hex(), encoding="utf-8")
        click.echo(click.style(f"✓ Secret written to {secret_out}", fg="green"))
    click.echo(json.dumps(ident.to_dict(), indent=2))


@main.command()
@click.option("--timestamp", type=float, help="Unix time (default: now)")
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config")
def epoch(timestamp, config_path):
    """Show the epoch for a point in time."""
    try:
        config = _load_config(config_path)
        value = current_epoch(timestamp, config.epoch_duration_seconds)
    except InboxProtocolError as e:
        _fail(str(e))
    click.echo(format_epoch(value, config.epoch_duration_seconds))


@main.command()
@click.option("--public-key", help="Recipient public key (base64 JWK)")
@click.option(
    "--key-file", type=click.Path(exists=True, dir_okay=False), help="Recipient key file"
)
@click.option("--message", "-m", help="Message to encrypt (default: stdin)")
@click.option("--subject", help="Wrap the message in a report with this subject")
@click.option("--category", default="general", show_default=True, help="Report category")
@click.option(
    "--urgency",
    type=click.Choice([u.value for u in Urgency]),
    default=Urgency.MEDIUM.value,
    show_default=True,
    help="Report urgency",
)
def encrypt(public_key, key_file, message, subject, category, urgency):
    """
    Encrypt a message to a recipient and print the envelope JSON.

    With --subject the message becomes the body of a sanitized report.
    """
    if key_file:
        try:
            public_key = json.loads(Path(key_file).read_text(encoding="utf-8"))[
                "publicKey"
            ]
        except (ValueError, KeyError, TypeError):
            _fail("key file does not contain a readable public key")
    if not public_key:
        _fail("provide --public-key or --key-file")

    text = message if message is not None else sys.stdin.read()
    if subject is None:
        payload = text.encode("utf-8")
    else:
        try:
            payload = ReportData(
                subject=subject,
                body=text,
                category=category,
                urgency=Urgency(urgency),
            ).sanitized().to_payload()
        except ValueError as e:
            _fail(f"Invalid report: {e}")
    try:
        envelope = HybridCodec().encrypt(payload, public_key)
    except InboxProtocolError as e:
        _fail(f"Encryption failed: {e}")
    click.echo(json.dumps(envelope.to_dict(), indent=2))


@main.command()
@click.argument("envelope_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--key-file",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Recipient key file",
)
@click.option("--password", help="Key file password (prompted if needed)")
@click.option("--report", "as_report", is_flag=True, help="Parse the plaintext as a report")
def decrypt(envelope_file, key_file, password, as_report):
    """Decrypt an envelope with the recipient key file."""
    key_data = Path(key_file).read_text(encoding="utf-8")
    try:
        protected = bool(json.loads(key_data).get("protected"))
    except (ValueError, AttributeError):
        _fail("key file is not a key pair export")
    if password is None and protected:
        password = click.prompt("Key file password", hide_input=True)

    try:
        pair = import_key_pair(key_data, password=password)
        envelope = EncryptedEnvelope.from_json(
            Path(envelope_file).read_text(encoding="utf-8")
        )
        plaintext = HybridCodec().decrypt(envelope, pair.private_key)
    except (KeyStoreError, DecryptionError, ValueError) as e:
        _fail(f"Decryption failed: {e}")
    if not as_report:
        click.echo(plaintext.decode("utf-8", errors="replace"))
        return

    try:
        report = ReportData.from_payload(plaintext)
    except ValueError as e:
        _fail(str(e))
    click.echo(f"Subject:  {report.subject}")
    click.echo(f"Category: {report.category}")
    click.echo(f"Urgency:  {report.urgency.value}")
    click.echo(f"Sent:     {report.timestamp}")
    click.echo("")
    click.echo(report.body)


@main.command("verify-proof")
@click.argument("proof_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--issued-at", type=float, help="Proof issue time; enables the freshness check")
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config")
def verify_proof(proof_file, issued_at, config_path):
    """Verify a proof envelope JSON file."""
    try:
        data = json.loads(Path(proof_file).read_text(encoding="utf-8"))
    except ValueError:
        _fail("proof file is not JSON")

    try:
        config = _load_config(config_path)
    except InboxProtocolError as e:
        _fail(str(e))
    valid = verify_envelope(data)
    if valid and issued_at is not None:
        valid = check_freshness(
            data, issued_at, epoch_duration_seconds=config.epoch_duration_seconds
        )

    if valid:
        click.echo(click.style("✓ VALID", fg="green"))
    else:
        click.echo(click.style("✗ INVALID", fg="red"))
        sys.exit(1)


@main.command()
@click.option("--members", type=int, default=5, show_default=True, help="Group size")
@click.option("--message", "-m", default="hello", show_default=True)
def demo(members, message):
    """
    Run the submission flow end to end.

    Builds a group, submits once (accepted), submits again in the same
    epoch (rejected as duplicate), then decrypts the stored record.
    """
    import trio

    from anon_inbox.protocol.collaborators import InMemoryGroup, InMemoryRecordStore
    from anon_inbox.protocol.nullifier import InMemoryNullifierStore
    from anon_inbox.protocol.pipeline import SubmissionPipeline, SubmissionRequest

    if members < 1:
        _fail("--members must be at least 1")

    async def _run():
        submitter = generate_identity()
        group = InMemoryGroup([submitter.commitment])
        for _ in range(members - 1):
            group.add_member(generate_identity().commitment)

        recipient = generate_key_pair()
        store = InMemoryRecordStore()
        pipeline = SubmissionPipeline(
            InMemoryNullifierStore(), store, group=group, moderation_sink=store
        )
        request = SubmissionRequest(
            recipient_public_key=recipient.public_key,
            payload=message.encode("utf-8"),
            identity=submitter,
        )

        click.echo("\n" + "=" * 70)
        click.echo(click.style("Anonymous Inbox Demonstration", fg="cyan", bold=True))
        click.echo("=" * 70)
        click.echo(f"Group size: {len(group)}  root: {group.current_merkle_root().to_hex()[:18]}...")
        click.echo(format_epoch(pipeline.current_epoch()))

        first = await pipeline.submit(request)
        states = " -> ".join(s.name for s in first.trace)
        click.echo(f"\nFirst submission:  {states}")
        try:
            first.raise_for_rejection()
        except InboxProtocolError as e:
            _fail(f"submission rejected: {first.reason.value} ({e})")

        second = await pipeline.submit(request)
        click.echo(f"Second submission: {second.reason.value}")
        click.echo(f"  user message: {second.user_message}")
        try:
            second.raise_for_rejection()
        except DuplicateNullifierError as e:
            click.echo(f"  rate limited in epoch {e.epoch}")
        except InboxProtocolError as e:
            _fail(f"unexpected rejection: {second.reason.value} ({e})")

        plaintext = HybridCodec().decrypt(
            first.record.encrypted_data, recipient.private_key
        )
        click.echo(f"\nRecipient decrypted record {first.record.id}: {plaintext.decode('utf-8')!r}")
        click.echo(click.style("\n✓ Demonstration complete", fg="green"))

    trio.run(_run)


@main.command()
def version():
    """Show version and disclaimer information."""
    click.echo(f"\nAnonymous Inbox v{__version__}")
    click.echo("Proof of Concept - Not Production Ready\n")
    print_disclaimer()


if __name__ == "__main__":
    main()
