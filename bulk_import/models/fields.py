from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Target field catalog for contact / company imports.

The catalog is fixed and shared by the mapping engine, the row validator and the
commit executor. Fields are partitioned into the ``person`` and ``organization``
groups; ``name`` is the only required field.

Aliases are the synonym dictionary used by auto-detection. They are written the
way operators type spreadsheet headers and are normalized (case-fold, accents and
punctuation stripped) before comparison, so "Razão Social" and "razao social"
are the same alias.
"""

__all__ = [
    "FieldGroup",
    "ImportField",
    "PERSON_FIELDS",
    "ORGANIZATION_FIELDS",
    "ALL_IMPORT_FIELDS",
    "FIELDS_BY_ID",
    "REQUIRED_FIELD_ID",
    "get_field",
]


class FieldGroup(Enum):
    """Entity a catalog field belongs to."""
    PERSON = "person"
    ORGANIZATION = "organization"


@dataclass(frozen=True)
class ImportField:
    """Single catalog entry (FieldId + display metadata + synonyms)."""
    id: str
    label: str
    group: FieldGroup
    aliases: tuple[str, ...]
    required: bool = False


PERSON_FIELDS: tuple[ImportField, ...] = (
    ImportField("name", "Nome da Pessoa", FieldGroup.PERSON,
                ("nome", "nome completo", "contato", "nome do contato", "name", "full name"),
                required=True),
    ImportField("first_name", "Primeiro Nome", FieldGroup.PERSON,
                ("primeiro nome", "first name", "prenome")),
    ImportField("last_name", "Sobrenome", FieldGroup.PERSON,
                ("sobrenome", "ultimo nome", "last name")),
    ImportField("cpf", "CPF", FieldGroup.PERSON, ("cpf", "cpf cnpj", "documento")),
    ImportField("email", "Email", FieldGroup.PERSON,
                ("email", "e mail", "correio", "email pessoal")),
    ImportField("phone", "Telefone", FieldGroup.PERSON,
                ("telefone", "fone", "tel", "telefone pessoal", "phone")),
    ImportField("whatsapp", "WhatsApp", FieldGroup.PERSON, ("whatsapp", "celular", "cel", "zap")),
    ImportField("job_title", "Cargo", FieldGroup.PERSON,
                ("cargo", "funcao", "profissao", "job title")),
    ImportField("notes", "Observações", FieldGroup.PERSON,
                ("observacoes", "observacao", "notas", "anotacoes", "notes")),
    ImportField("label", "Status/Temperatura", FieldGroup.PERSON,
                ("status", "temperatura", "etiqueta", "label")),
    ImportField("lead_source", "Origem do Lead", FieldGroup.PERSON,
                ("origem", "origem do lead", "fonte", "canal")),
    ImportField("person_tags", "Tags da Pessoa", FieldGroup.PERSON,
                ("tags", "tags pessoa", "tags da pessoa")),
)

ORGANIZATION_FIELDS: tuple[ImportField, ...] = (
    ImportField("org_name", "Nome da Empresa", FieldGroup.ORGANIZATION,
                ("empresa", "razao social", "organizacao", "nome da empresa", "company")),
    ImportField("cnpj", "CNPJ", FieldGroup.ORGANIZATION,
                ("cnpj", "cnpj da empresa", "cnpj empresa")),
    ImportField("cnae", "CNAE", FieldGroup.ORGANIZATION, ("cnae", "codigo cnae")),
    ImportField("org_phone", "Telefone da Empresa", FieldGroup.ORGANIZATION,
                ("telefone empresa", "fone empresa", "tel empresa", "telefone da empresa")),
    ImportField("org_email", "Email da Empresa", FieldGroup.ORGANIZATION,
                ("email empresa", "e mail empresa", "email da empresa")),
    ImportField("automotores", "Automotores/Frota", FieldGroup.ORGANIZATION,
                ("automotores", "qtd veiculos", "frota", "veiculos")),
    ImportField("org_address", "Endereço da Empresa", FieldGroup.ORGANIZATION,
                ("endereco", "endereco empresa", "endereco da empresa")),
    ImportField("address_city", "Cidade", FieldGroup.ORGANIZATION, ("cidade", "municipio")),
    ImportField("address_state", "Estado", FieldGroup.ORGANIZATION, ("estado", "uf")),
    ImportField("address_zipcode", "CEP", FieldGroup.ORGANIZATION, ("cep", "codigo postal")),
    ImportField("org_tags", "Tags da Empresa", FieldGroup.ORGANIZATION,
                ("tags empresa", "tags da empresa")),
)

ALL_IMPORT_FIELDS: tuple[ImportField, ...] = PERSON_FIELDS + ORGANIZATION_FIELDS

FIELDS_BY_ID: dict[str, ImportField] = {f.id: f for f in ALL_IMPORT_FIELDS}

REQUIRED_FIELD_ID = "name"


def get_field(field_id: str) -> ImportField | None:
    return FIELDS_BY_ID.get(field_id)
