"""Registry of tenant-owned business tables.

Every table whose rows belong to exactly one tenant is declared here, once.
The guard refuses any table that is not registered, and the lifecycle
operations derive ownership inference, cascades and purge order from the
references declared here.

The business schema itself (escolas, produtos, contratos, ...) is owned by
the application modules; the Core tables below describe only the columns
the tenancy layer reads or writes. They live in their own MetaData so they
are never created or dropped by the directory migrations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from graphlib import TopologicalSorter
from typing import Any, Callable, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    FromClause,
    Integer,
    MetaData,
    Numeric,
    ScalarSelect,
    String,
    Table,
    Text,
    func,
    select,
)

from infrastructure.database.models import NAMING_CONVENTION
from tenancy.infrastructure.models import UserModel
from tenancy.ports.exceptions import NotTenantOwnedError

business_metadata = MetaData(naming_convention=NAMING_CONVENTION)

TENANT_COLUMN = "tenant_id"


def _tenant_owned(name: str, *columns: Column) -> Table:
    return Table(
        name,
        business_metadata,
        Column("id", Integer, primary_key=True),
        *columns,
        Column(TENANT_COLUMN, String(26), nullable=True),
    )


escolas = _tenant_owned(
    "escolas",
    Column("nome", String(255), nullable=False),
    Column("codigo", String(50)),
    Column("endereco", Text),
    Column("ativo", Boolean, default=True),
)
produtos = _tenant_owned(
    "produtos",
    Column("nome", String(255), nullable=False),
    Column("unidade", String(20)),
    Column("ativo", Boolean, default=True),
)
fornecedores = _tenant_owned(
    "fornecedores",
    Column("nome", String(255), nullable=False),
    Column("cnpj", String(18)),
    Column("ativo", Boolean, default=True),
)
modalidades = _tenant_owned(
    "modalidades",
    Column("nome", String(100), nullable=False),
    Column("codigo_financeiro", String(20)),
    Column("ativo", Boolean, default=True),
)
categorias = _tenant_owned(
    "categorias",
    Column("nome", String(100), nullable=False),
)
contratos = _tenant_owned(
    "contratos",
    Column("numero", String(50), nullable=False),
    Column("fornecedor_id", Integer, nullable=False),
    Column("data_inicio", Date),
    Column("data_fim", Date),
    Column("ativo", Boolean, default=True),
)
contrato_produtos = _tenant_owned(
    "contrato_produtos",
    Column("contrato_id", Integer, nullable=False),
    Column("produto_id", Integer, nullable=False),
    Column("preco_unitario", Numeric(12, 2)),
    Column("quantidade_contratada", Numeric(12, 3)),
)
pedidos = _tenant_owned(
    "pedidos",
    Column("numero", String(50), nullable=False),
    Column("contrato_id", Integer, nullable=False),
    Column("escola_id", Integer),
    Column("data_pedido", Date),
    Column("status", String(20)),
)
pedido_itens = _tenant_owned(
    "pedido_itens",
    Column("pedido_id", Integer, nullable=False),
    Column("contrato_produto_id", Integer, nullable=False),
    Column("quantidade", Numeric(12, 3)),
)
estoque_escolas = _tenant_owned(
    "estoque_escolas",
    Column("escola_id", Integer, nullable=False),
    Column("produto_id", Integer, nullable=False),
    Column("quantidade_atual", Numeric(12, 3)),
)
estoque_lotes = _tenant_owned(
    "estoque_lotes",
    Column("estoque_escola_id", Integer, nullable=False),
    Column("lote", String(50)),
    Column("data_validade", Date),
    Column("quantidade", Numeric(12, 3)),
)
guias = _tenant_owned(
    "guias",
    Column("mes", Integer, nullable=False),
    Column("ano", Integer, nullable=False),
    Column("observacao", Text),
)
demandas = _tenant_owned(
    "demandas",
    Column("escola_id", Integer, nullable=False),
    Column("descricao", Text),
    Column("status", String(20)),
)
cardapios = _tenant_owned(
    "cardapios",
    Column("nome", String(255), nullable=False),
    Column("modalidade_id", Integer, nullable=False),
    Column("mes", Integer),
    Column("ano", Integer),
)
usuarios_escolas = _tenant_owned(
    "usuarios_escolas",
    Column("user_id", String(255), nullable=False),
    Column("escola_id", Integer, nullable=False),
)


@dataclass(frozen=True)
class Reference:
    """A foreign key from one tenant-owned table to another.

    Attributes:
        column: Referencing column on the child table
        parent: Name of the referenced tenant-owned table (by ``id``)
        owner: True when the parent owns the child. Owner references drive
            tenant inference during backfill and cascade on repoint.
    """

    column: str
    parent: str
    owner: bool = False


OwnerPath = Callable[[FromClause], ScalarSelect[Any]]


@dataclass(frozen=True)
class TenantOwnedTable:
    """Registry entry for one tenant-owned table.

    Attributes:
        table: Core table used to build scoped statements
        natural_keys: Uniqueness keys that were global before multi-tenancy;
            each is redefined as ``(*key, tenant_id)``
        references: Foreign keys to other tenant-owned tables
        owner_path: Custom tenant inference when no owner reference exists
    """

    table: Table
    natural_keys: tuple[tuple[str, ...], ...] = ()
    references: tuple[Reference, ...] = ()
    owner_path: Optional[OwnerPath] = field(default=None, compare=False)

    @property
    def name(self) -> str:
        return self.table.name

    @property
    def owner_reference(self) -> Optional[Reference]:
        for reference in self.references:
            if reference.owner:
                return reference
        return None


def _escola_owner_via_users(target: FromClause) -> ScalarSelect[Any]:
    # A school's owner is inferable only when all of its linked users point
    # at the same legacy tenant.
    users = UserModel.__table__
    return (
        select(func.min(users.c.tenant_id))
        .select_from(
            usuarios_escolas.join(users, users.c.id == usuarios_escolas.c.user_id)
        )
        .where(
            usuarios_escolas.c.escola_id == target.c.id,
            users.c.tenant_id.is_not(None),
        )
        .having(func.count(func.distinct(users.c.tenant_id)) == 1)
        .scalar_subquery()
    )


_ENTRIES = (
    TenantOwnedTable(
        escolas,
        natural_keys=(("nome",), ("codigo",)),
        owner_path=_escola_owner_via_users,
    ),
    TenantOwnedTable(produtos, natural_keys=(("nome",),)),
    TenantOwnedTable(fornecedores, natural_keys=(("cnpj",),)),
    TenantOwnedTable(modalidades, natural_keys=(("nome",),)),
    TenantOwnedTable(categorias, natural_keys=(("nome",),)),
    TenantOwnedTable(guias, natural_keys=(("mes", "ano"),)),
    TenantOwnedTable(
        contratos,
        natural_keys=(("numero",),),
        references=(Reference("fornecedor_id", "fornecedores", owner=True),),
    ),
    TenantOwnedTable(
        contrato_produtos,
        natural_keys=(("contrato_id", "produto_id"),),
        references=(
            Reference("contrato_id", "contratos", owner=True),
            Reference("produto_id", "produtos"),
        ),
    ),
    TenantOwnedTable(
        pedidos,
        natural_keys=(("numero",),),
        references=(
            Reference("contrato_id", "contratos", owner=True),
            Reference("escola_id", "escolas"),
        ),
    ),
    TenantOwnedTable(
        pedido_itens,
        references=(
            Reference("pedido_id", "pedidos", owner=True),
            Reference("contrato_produto_id", "contrato_produtos"),
        ),
    ),
    TenantOwnedTable(
        estoque_escolas,
        natural_keys=(("escola_id", "produto_id"),),
        references=(
            Reference("escola_id", "escolas", owner=True),
            Reference("produto_id", "produtos"),
        ),
    ),
    TenantOwnedTable(
        estoque_lotes,
        references=(Reference("estoque_escola_id", "estoque_escolas", owner=True),),
    ),
    TenantOwnedTable(
        demandas,
        references=(Reference("escola_id", "escolas", owner=True),),
    ),
    TenantOwnedTable(
        cardapios,
        references=(Reference("modalidade_id", "modalidades", owner=True),),
    ),
    TenantOwnedTable(
        usuarios_escolas,
        natural_keys=(("user_id", "escola_id"),),
        references=(Reference("escola_id", "escolas", owner=True),),
    ),
)

TENANT_OWNED_TABLES: dict[str, TenantOwnedTable] = {
    entry.name: entry for entry in _ENTRIES
}


def get_tenant_owned(name: str) -> TenantOwnedTable:
    """Look up a registry entry.

    Raises:
        NotTenantOwnedError: If ``name`` is not a registered tenant-owned table
    """
    try:
        return TENANT_OWNED_TABLES[name]
    except KeyError:
        raise NotTenantOwnedError(name) from None


def dependency_order() -> list[str]:
    """Table names ordered parents first (insert/merge order).

    Purges walk this list in reverse.
    """
    sorter: TopologicalSorter[str] = TopologicalSorter()
    for entry in _ENTRIES:
        sorter.add(entry.name, *(ref.parent for ref in entry.references))
    return list(sorter.static_order())


def owned_children(name: str) -> list[tuple[TenantOwnedTable, Reference]]:
    """Entries whose owner reference points at ``name`` (repoint cascade)."""
    children = []
    for entry in _ENTRIES:
        reference = entry.owner_reference
        if reference is not None and reference.parent == name:
            children.append((entry, reference))
    return children


def all_references() -> list[tuple[TenantOwnedTable, Reference]]:
    """Every (child entry, reference) pair in the registry."""
    return [(entry, ref) for entry in _ENTRIES for ref in entry.references]


def inferred_owner(
    entry: TenantOwnedTable, target: Optional[FromClause] = None
) -> Optional[ScalarSelect[Any]]:
    """Scalar subquery yielding the tenant a row of ``entry`` belongs to.

    ``target`` lets callers correlate against an alias of the table.
    Returns None when the table has no inference path; such tables can
    only be backfilled with an explicit legacy tenant.
    """
    target = entry.table if target is None else target
    if entry.owner_path is not None:
        return entry.owner_path(target)
    reference = entry.owner_reference
    if reference is None:
        return None
    parent = TENANT_OWNED_TABLES[reference.parent].table
    return (
        select(parent.c[TENANT_COLUMN])
        .where(parent.c.id == target.c[reference.column])
        .scalar_subquery()
    )


@dataclass(frozen=True)
class SeedRows:
    """Rows inserted into a new tenant during provisioning."""

    table: str
    rows: tuple[dict[str, Any], ...]


DEFAULT_SEED = (
    SeedRows(
        "modalidades",
        (
            {"nome": "Creche", "codigo_financeiro": "CRE", "ativo": True},
            {"nome": "Pré-escola", "codigo_financeiro": "PRE", "ativo": True},
            {"nome": "Ensino Fundamental", "codigo_financeiro": "EF", "ativo": True},
            {"nome": "Ensino Médio", "codigo_financeiro": "EM", "ativo": True},
            {"nome": "EJA", "codigo_financeiro": "EJA", "ativo": True},
        ),
    ),
    SeedRows(
        "categorias",
        (
            {"nome": "Hortifrúti"},
            {"nome": "Grãos e cereais"},
            {"nome": "Carnes e proteínas"},
            {"nome": "Laticínios"},
            {"nome": "Panificação"},
        ),
    ),
)

DEFAULT_TENANT_LIMITS = {
    "max_users": 50,
    "max_schools": 10,
    "max_products": 500,
    "max_contracts": 20,
}
