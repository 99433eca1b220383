"""Inspect certificates held in ConfigMaps, Secrets and CertificateSigningRequests."""

from __future__ import annotations

import base64
import binascii
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, TextIO

import yaml
from cryptography import x509
from cryptography.x509.oid import NameOID

from omc.helpers import (
    OmcError,
    format_output,
    get_age,
    get_json_template,
    read_yaml,
    select_row,
)

CA_KEY_NAMES = ("ca-bundle.crt", "ca.crt", "service-ca.crt")
HEADERS = ["namespace", "name", "kind", "age", "certtype", "subject", "notbefore",
           "notafter", "validfor", "issuer", "groups", "usages"]
DEFAULT_RESOURCE_TYPES = ("cm", "secret", "csr")

_MISSING_KEY_MSG = "{} does not contain a key '{}'\n"
_MISSING_CONTENT_MSG = "{} missing content for key '{}'\n"
_PARSE_FAILURE_MSG = "Failed to parse {}/{} : {}\n"
_CONVERSION_FAILURE_MSG = "Failed to convert to {}: {}"
_NO_CERTS_MSG = "data does not contain any valid RSA or ECDSA certificates"

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_PEM_RE = re.compile(rb"-----BEGIN ([^\r\n-]*)-----\r?\n(.*?)-----END \1-----", re.S)

_EXT_KEY_USAGES = {
    "2.5.29.37.0": 0,
    "1.3.6.1.5.5.7.3.1": 1,
    "1.3.6.1.5.5.7.3.2": 2,
    "1.3.6.1.5.5.7.3.3": 3,
    "1.3.6.1.5.5.7.3.4": 4,
    "1.3.6.1.5.5.7.3.5": 5,
    "1.3.6.1.5.5.7.3.6": 6,
    "1.3.6.1.5.5.7.3.7": 7,
    "1.3.6.1.5.5.7.3.8": 8,
    "1.3.6.1.5.5.7.3.9": 9,
    "1.3.6.1.4.1.311.10.3.3": 10,
    "2.16.840.1.113730.4.1": 11,
    "1.3.6.1.4.1.311.2.1.22": 12,
    "1.3.6.1.4.1.311.61.1.1": 13,
}


class CertParseError(OmcError):
    """Raised when PEM data holds no usable certificate; keeps those parsed so far."""

    def __init__(self, message: str, certificates: list[x509.Certificate] | None = None):
        super().__init__(message)
        self.certificates = list(certificates or [])


def parse_certs_pem(data: bytes | str) -> list[x509.Certificate]:
    """Parse every header-less CERTIFICATE block in PEM data."""
    if isinstance(data, str):
        data = data.encode()
    certificates: list[x509.Certificate] = []
    for match in _PEM_RE.finditer(data):
        block_type, body = match.group(1), match.group(2)
        lines = body.splitlines()
        if any(b":" in line for line in lines):
            continue
        try:
            der = base64.b64decode(b"".join(line.strip() for line in lines), validate=True)
        except (binascii.Error, ValueError):
            continue
        if block_type != b"CERTIFICATE":
            continue
        try:
            certificates.append(x509.load_der_x509_certificate(der))
        except ValueError as exc:
            raise CertParseError(f"x509: {exc}", certificates) from exc
    if not certificates:
        raise CertParseError(_NO_CERTS_MSG)
    return certificates


def _parse_time(value: Any) -> datetime:
    if value is None or value == "":
        return _ZERO_TIME
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _time_string(value: datetime) -> str:
    dt = value.astimezone(timezone.utc)
    text = (f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d} "
            f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}")
    if dt.microsecond:
        text += f".{dt.microsecond:06d}".rstrip("0")
    return text + " +0000 UTC"


def _utc(cert: x509.Certificate, name: str) -> datetime:
    value = getattr(cert, f"{name}_utc", None)
    if value is None:
        value = getattr(cert, name).replace(tzinfo=timezone.utc)
    return value


def _attribute_values(name: x509.Name, oid: x509.ObjectIdentifier) -> list[str]:
    return [str(attr.value) for attr in name.get_attributes_for_oid(oid)]


def _common_name(name: x509.Name) -> str:
    values = _attribute_values(name, NameOID.COMMON_NAME)
    return values[-1] if values else ""


@dataclass
class CertDetail:
    """A resource together with one certificate it holds (or none)."""

    obj: Mapping[str, Any]
    cert_type: str
    certificate: x509.Certificate | None = None

    @property
    def _meta(self) -> Mapping[str, Any]:
        return self.obj.get("metadata") or {}

    @property
    def namespace(self) -> str:
        return self._meta.get("namespace") or ""

    @property
    def name(self) -> str:
        return self._meta.get("name") or ""

    @property
    def kind(self) -> str:
        return self.obj.get("kind") or ""

    @property
    def creation_timestamp(self) -> datetime:
        return _parse_time(self._meta.get("creationTimestamp"))

    @property
    def groups(self) -> list[str]:
        if self.certificate is None:
            return []
        return _attribute_values(self.certificate.subject, NameOID.ORGANIZATION_NAME)

    def is_zero(self) -> bool:
        """True when no certificate is attached."""
        return self.certificate is None

    def valid_from(self) -> str:
        if self.certificate is None:
            return ""
        return _time_string(_utc(self.certificate, "not_valid_before"))

    def valid_till(self) -> str:
        if self.certificate is None:
            return ""
        return _time_string(_utc(self.certificate, "not_valid_after"))

    def valid_for(self) -> list[str]:
        """IP addresses, then DNS names, the certificate is valid for."""
        if self.certificate is None:
            return []
        try:
            san = self.certificate.extensions.get_extension_for_class(
                x509.SubjectAlternativeName).value
        except x509.ExtensionNotFound:
            return []
        ips = [str(ip) for ip in san.get_values_for_type(x509.IPAddress)]
        return ips + list(san.get_values_for_type(x509.DNSName))

    def issuer(self) -> str:
        if self.certificate is None:
            return ""
        issuer_cn = _common_name(self.certificate.issuer)
        if _common_name(self.certificate.subject) == issuer_cn:
            return "[self]"
        return issuer_cn

    def usages(self) -> list[str]:
        if self.certificate is None:
            return []
        try:
            eku = self.certificate.extensions.get_extension_for_class(
                x509.ExtendedKeyUsage).value
        except x509.ExtensionNotFound:
            return []
        result = []
        for oid in eku:
            code = _EXT_KEY_USAGES.get(oid.dotted_string)
            if code is None:
                continue
            if code == 2:
                result.append("client")
            elif code == 1:
                result.append("serving")
            else:
                result.append(str(code))
        return result

    def subject(self) -> str:
        if self.certificate is None:
            return ""
        return self.certificate.subject.rfc4514_string()

    def to_dict(self) -> dict[str, Any]:
        """The serialised form used for json and yaml output."""
        data: dict[str, Any] = {
            "namespace": self.namespace,
            "name": self.name,
            "kind": self.kind,
            "certType": self.cert_type,
            "subject": self.subject(),
            "notBefore": self.valid_from(),
            "notAfter": self.valid_till(),
        }
        valid_for = self.valid_for()
        if valid_for:
            data["validFor"] = valid_for
        data["issuer"] = self.issuer()
        groups = self.groups
        if groups:
            data["groups"] = groups
        usages = self.usages()
        if usages:
            data["usages"] = usages
        data["creationDate"] = _time_string(self.creation_timestamp)
        return data


def _load_items(path: Path) -> list[dict[str, Any]]:
    try:
        text = path.read_bytes()
    except OSError:
        return []
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise OmcError(f"Error when trying to unmarshal file {path}") from exc
    if loaded is None:
        return []
    if not isinstance(loaded, dict) or not isinstance(loaded.get("items") or [], list):
        raise OmcError(f"Error when trying to unmarshal file {path}")
    return [item for item in loaded.get("items") or [] if item is not None]


def _namespaces(root: str | os.PathLike, namespace: str, all_namespaces: bool) -> list[str]:
    if not all_namespaces:
        return [namespace]
    try:
        return sorted(p.name for p in (Path(root) / "namespaces").iterdir())
    except OSError:
        return []


def _namespaced_items(root: str | os.PathLike, namespace: str, all_namespaces: bool,
                      filename: str) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for ns in _namespaces(root, namespace, all_namespaces):
        items.extend(_load_items(Path(root) / "namespaces" / ns / "core" / filename))
    return items


def get_secrets(root: str | os.PathLike, namespace: str,
                all_namespaces: bool) -> list[dict[str, Any]]:
    """Secrets of one namespace, or of every namespace."""
    return _namespaced_items(root, namespace, all_namespaces, "secrets.yaml")


def get_config_maps(root: str | os.PathLike, namespace: str,
                    all_namespaces: bool) -> list[dict[str, Any]]:
    """ConfigMaps of one namespace, or of every namespace."""
    return _namespaced_items(root, namespace, all_namespaces, "configmaps.yaml")


def get_certificate_signing_requests(root: str | os.PathLike) -> list[dict[str, Any]]:
    """Every cluster-scoped CertificateSigningRequest."""
    folder = (Path(root) / "cluster-scoped-resources" / "certificates.k8s.io"
              / "certificatesigningrequests")
    try:
        entries = sorted(folder.iterdir(), key=lambda p: p.name)
    except OSError:
        return []
    requests = []
    for entry in entries:
        try:
            loaded = yaml.safe_load(read_yaml(entry))
        except yaml.YAMLError as exc:
            raise OmcError(f"Error when trying to unmarshal file: {entry}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise OmcError(f"Error when trying to unmarshal file: {entry}")
        requests.append(loaded)
    return requests


def _decode_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise ValueError(f"expected a base64 string, got {type(value).__name__}")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"illegal base64 data: {exc}") from exc


class Inspector:
    """Finds certificates in resources, reporting problems to a stream."""

    def __init__(self, list_non_certs: bool = False, show_parse_failure: bool = False,
                 out: TextIO | None = None):
        self.list_non_certs = list_non_certs
        self.show_parse_failure = show_parse_failure
        self.out = out if out is not None else sys.stdout

    def _failure(self, message: str) -> None:
        if self.show_parse_failure:
            self.out.write(message)

    def _parse(self, obj: Mapping[str, Any], data: bytes | str,
               cert_type: str) -> list[CertDetail]:
        try:
            certificates = parse_certs_pem(data)
        except CertParseError as exc:
            meta = obj.get("metadata") or {}
            self._failure(_PARSE_FAILURE_MSG.format(obj.get("kind", ""),
                                                    meta.get("name", ""), exc))
            certificates = exc.certificates
        return [CertDetail(obj, cert_type, cert) for cert in certificates]

    @staticmethod
    def _describe(prefix: str, obj: Mapping[str, Any]) -> str:
        meta = obj.get("metadata") or {}
        return f"{prefix}/{meta.get('name', '')}[{meta.get('namespace', '')}]"

    def inspect_config_map(self, obj: Mapping[str, Any]) -> list[CertDetail]:
        """CA bundle certificates held by a ConfigMap."""
        resource = self._describe("configmaps", obj)
        data = obj.get("data") or {}
        if not isinstance(data, Mapping) or not all(isinstance(v, str) for v in data.values()):
            self.out.write(_CONVERSION_FAILURE_MSG.format(obj.get("kind", ""),
                                                          "data values must be strings"))
            data = {}
        details: list[CertDetail] = []
        for key in CA_KEY_NAMES:
            if key not in data:
                self._failure(_MISSING_KEY_MSG.format(resource, key))
                continue
            if not data[key]:
                self._failure(_MISSING_CONTENT_MSG.format(resource, key))
                continue
            details.extend(self._parse(obj, data[key], "ca-bundle"))
        if self.list_non_certs and not details:
            details.append(CertDetail(obj, "N/A"))
        return details

    def inspect_secret(self, obj: Mapping[str, Any]) -> list[CertDetail]:
        """TLS and CA certificates held by a Secret."""
        resource = self._describe("secret", obj)
        raw = obj.get("data") or {}
        try:
            if not isinstance(raw, Mapping):
                raise ValueError("data is not a mapping")
            data = {key: _decode_bytes(value) for key, value in raw.items()}
        except ValueError as exc:
            self.out.write(_CONVERSION_FAILURE_MSG.format(obj.get("kind", ""), exc))
            data = {}
        details: list[CertDetail] = []
        is_tls = "tls.crt" in data
        is_ca = False
        if is_tls:
            if not data["tls.crt"]:
                self._failure(_MISSING_CONTENT_MSG.format(resource, "tls.crt"))
            details.extend(self._parse(obj, data["tls.crt"], "certificate"))
        else:
            self._failure(_MISSING_KEY_MSG.format(resource, "tls.crt"))
        for key in CA_KEY_NAMES:
            if key not in data:
                self._failure(_MISSING_KEY_MSG.format(resource, key))
                continue
            if not data[key]:
                self._failure(_MISSING_CONTENT_MSG.format(resource, key))
                continue
            is_ca = True
            details.extend(self._parse(obj, data[key], "ca-bundle"))
        if self.list_non_certs and not details:
            details.append(CertDetail(obj, "N/A"))
        if not is_tls and not is_ca:
            self._failure(f"{resource} NOT a tls secret or token secret\n")
        return details

    def inspect_csr(self, obj: Mapping[str, Any]) -> list[CertDetail]:
        """The issued certificate of a CertificateSigningRequest."""
        resource = self._describe("secret", obj)
        details: list[CertDetail] = []
        status = obj.get("status") or {}
        try:
            certificate = _decode_bytes(status.get("certificate")
                                        if isinstance(status, Mapping) else None)
        except ValueError as exc:
            self.out.write(_CONVERSION_FAILURE_MSG.format(obj.get("kind", ""), exc))
            certificate = b""
        if not certificate:
            self._failure(f"{resource} NOT SIGNED\n")
            if self.list_non_certs:
                details.append(CertDetail(obj, "csr"))
        try:
            certificates = parse_certs_pem(certificate)
        except CertParseError as exc:
            meta = obj.get("metadata") or {}
            self._failure(_PARSE_FAILURE_MSG.format(obj.get("kind", ""),
                                                    meta.get("name", ""), exc))
            if self.list_non_certs:
                details.append(CertDetail(obj, "csr"))
            certificates = exc.certificates
        details.extend(CertDetail(obj, "ca-bundle", cert) for cert in certificates)
        return details

    def inspect_resources(self, root: str | os.PathLike,
                          resource_types: Iterable[str] = DEFAULT_RESOURCE_TYPES,
                          namespace: str = "", all_namespaces: bool = False,
                          output: str = "") -> str:
        """Collect certificates of the given resource types and render them."""
        details: list[CertDetail] = []
        for resource_type in resource_types:
            if resource_type in ("cm", "configmap", "configmaps"):
                for obj in get_config_maps(root, namespace, all_namespaces):
                    details.extend(self.inspect_config_map(obj))
            elif resource_type in ("secret", "secrets"):
                for obj in get_secrets(root, namespace, all_namespaces):
                    details.extend(self.inspect_secret(obj))
            elif resource_type in ("csr", "certificatesigningrequest",
                                   "certificatesigningrequests"):
                for obj in get_certificate_signing_requests(root):
                    details.extend(self.inspect_csr(obj))
        rows = []
        for detail in details:
            row = [
                detail.namespace,
                detail.name,
                detail.kind,
                get_age(root, detail.creation_timestamp),
                detail.cert_type,
                detail.subject(),
                detail.valid_from(),
                detail.valid_till(),
                ",".join(detail.valid_for()),
                detail.issuer(),
                ",".join(detail.groups),
                ",".join(detail.usages()),
            ]
            rows.append(select_row(row, all_namespaces, False, "", output, 8))
        return format_output([d.to_dict() for d in details], 8, output, all_namespaces,
                             False, HEADERS, rows, get_json_template(output))