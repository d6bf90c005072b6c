#!/usr/bin/env python3
"""
CLI de firma XAdES-BES para comprobantes del SRI

Ejemplos:
  python -m firma_sri.cli firmar factura.xml factura_firmada.xml --p12 firma.p12 --password secreto
  python -m firma_sri.cli verificar factura_firmada.xml
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

from .config import get_firma_config
from .exceptions import FirmaError
from .log_config import setup_logging
from .pkcs12_utils import load_signing_identity_from_file
from .validator import ValidationReport, XadesValidator
from .xades_signer import ProductionPlace, SignatureOptions, XadesSigner
from .xml_utils import CANONICALIZATION_MODES


def format_report(report: ValidationReport) -> str:
    """Reporte legible de una validación estructural"""
    lines = ["", "=== REPORTE DE VALIDACIÓN ===", ""]
    lines.append(f"Estado: {'✅ VÁLIDO' if report.valid else '❌ INVÁLIDO'}")

    if report.errors:
        lines.append("")
        lines.append("❌ ERRORES:")
        lines.extend(f"  - {error}" for error in report.errors)

    if report.warnings:
        lines.append("")
        lines.append("⚠️  ADVERTENCIAS:")
        lines.extend(f"  - {warning}" for warning in report.warnings)

    if report.info:
        lines.append("")
        lines.append("ℹ️  INFORMACIÓN:")
        lines.extend(f"  {key}: {value}" for key, value in report.info.items())

    lines.append("")
    lines.append("=" * 30)
    return "\n".join(lines)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Firma XAdES-BES de comprobantes electrónicos SRI (Ecuador)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ejemplos:
  %(prog)s firmar factura.xml factura_firmada.xml --p12 firma.p12 --password secreto
  %(prog)s firmar factura.xml salida.xml --algoritmo SHA-256 --rol Emisor
  %(prog)s verificar factura_firmada.xml
        """
    )
    parser.add_argument('--log-level', help='Nivel de logging (default: SRI_LOG_LEVEL o INFO)')

    subparsers = parser.add_subparsers(dest='comando', help='Comandos disponibles')

    # Comando firmar
    parser_firmar = subparsers.add_parser('firmar', help='Firmar un comprobante XML')
    parser_firmar.add_argument('entrada', help='XML a firmar')
    parser_firmar.add_argument('salida', help='Archivo de salida para el XML firmado')
    parser_firmar.add_argument('--p12', help='Certificado .p12/.pfx (default: SRI_CERT_PATH)')
    parser_firmar.add_argument('--password', help='Contraseña del certificado (default: SRI_CERT_PASSWORD)')
    parser_firmar.add_argument('--alias', help='Friendly name del certificado dentro del P12')
    parser_firmar.add_argument('--algoritmo', help='SHA-1 o SHA-256 (default: SRI_SIGN_ALGORITHM)')
    parser_firmar.add_argument('--canonicalizacion', choices=CANONICALIZATION_MODES,
                               help='Serialización de fragmentos (default: SRI_CANONICALIZATION)')
    parser_firmar.add_argument('--ciudad', help='Ciudad del lugar de producción')
    parser_firmar.add_argument('--provincia', help='Provincia del lugar de producción')
    parser_firmar.add_argument('--codigo-postal', help='Código postal del lugar de producción')
    parser_firmar.add_argument('--pais', help='País del lugar de producción')
    parser_firmar.add_argument('--sin-lugar', action='store_true',
                               help='Omitir SignatureProductionPlace')
    parser_firmar.add_argument('--rol', action='append', dest='roles',
                               help='Rol declarado del firmante (repetible)')

    # Comando verificar
    parser_verificar = subparsers.add_parser('verificar', help='Validar la estructura de un XML firmado')
    parser_verificar.add_argument('archivo', help='XML firmado')

    return parser


def _firmar(args: argparse.Namespace) -> int:
    config = get_firma_config()

    p12_path = args.p12 or config.cert_path
    if not p12_path:
        print("❌ Debe indicar el certificado con --p12 o SRI_CERT_PATH")
        return 1

    password = args.password if args.password is not None else config.cert_password

    place: Optional[ProductionPlace] = None
    if not args.sin_lugar:
        place = ProductionPlace(
            city=args.ciudad or config.city,
            state=args.provincia or config.state,
            code=args.codigo_postal or config.code,
            country=args.pais or config.country,
        )

    options = SignatureOptions(
        algorithm=args.algoritmo or config.algorithm,
        production_place=place,
        signer_roles=args.roles,
        canonicalization=args.canonicalizacion or config.canonicalization,
    )

    try:
        identity = load_signing_identity_from_file(
            p12_path, password, alias=args.alias or config.cert_alias
        )
        XadesSigner(identity).sign_file(args.entrada, args.salida, options)
    except FirmaError as e:
        print(f"❌ Error: {e}")
        return 1

    print(f"✅ XML firmado guardado en: {args.salida}")
    return 0


def _verificar(args: argparse.Namespace) -> int:
    if not Path(args.archivo).exists():
        print(f"❌ Archivo no encontrado: {args.archivo}")
        return 1

    report = XadesValidator().validate_file(args.archivo)
    print(format_report(report))
    return 0 if report.valid else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.comando:
        parser.print_help()
        return 1

    setup_logging(args.log_level or get_firma_config().log_level)

    if args.comando == 'firmar':
        return _firmar(args)
    return _verificar(args)


if __name__ == "__main__":
    sys.exit(main())
