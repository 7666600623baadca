"""
PostgreSQL schema - idempotent DDL for every table the portal uses.

Safe to run repeatedly: CREATE TABLE / INDEX IF NOT EXISTS, plus
ALTER TABLE ... ADD COLUMN IF NOT EXISTS for columns added after the
first deployments.
"""

from typing import List

from sqlalchemy import text

from portal.core.logging import get_logger

logger = get_logger(__name__)

TABLES = {
    "students": """
        CREATE TABLE IF NOT EXISTS students (
            id SERIAL PRIMARY KEY,
            cod_etu VARCHAR(20) UNIQUE NOT NULL,
            lib_nom_pat_ind VARCHAR(100),
            lib_pr1_ind VARCHAR(100),
            cod_etp VARCHAR(20),
            cod_anu INTEGER,
            cod_vrs_vet VARCHAR(20),
            cod_dip VARCHAR(20),
            cod_uti VARCHAR(20),
            dat_cre_iae TIMESTAMP,
            nbr_ins_cyc INTEGER,
            nbr_ins_etp INTEGER,
            nbr_ins_dip INTEGER,
            tem_dip_iae VARCHAR(1),
            cod_pay_nat VARCHAR(10),
            cod_etb VARCHAR(20),
            cod_nne_ind VARCHAR(20),
            dat_cre_ind TIMESTAMP,
            dat_mod_ind TIMESTAMP,
            date_nai_ind DATE,
            daa_ent_etb INTEGER,
            lib_nom_usu_ind VARCHAR(100),
            lib_pr2_ind VARCHAR(100),
            lib_pr3_ind VARCHAR(100),
            cod_sex_etu VARCHAR(1),
            lib_vil_nai_etu VARCHAR(100),
            cod_dep_pay_nai VARCHAR(10),
            daa_ens_sup INTEGER,
            daa_etb INTEGER,
            lib_nom_ind_arb VARCHAR(100),
            lib_prn_ind_arb VARCHAR(100),
            cin_ind VARCHAR(20),
            lib_vil_nai_etu_arb VARCHAR(100),
            lib_etp VARCHAR(200),
            lic_etp VARCHAR(200),
            last_sync TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "administrative_situation": """
        CREATE TABLE IF NOT EXISTS administrative_situation (
            id SERIAL PRIMARY KEY,
            cod_etu VARCHAR(20) NOT NULL,
            cod_anu INTEGER,
            cod_etp VARCHAR(20),
            lib_etp VARCHAR(200),
            lic_etp VARCHAR(200),
            cod_vrs_vet VARCHAR(20),
            eta_iae VARCHAR(10),
            tem_iae_prm VARCHAR(10),
            dat_cre_iae TIMESTAMP,
            dat_mod_iae TIMESTAMP,
            nbr_ins_cyc INTEGER,
            nbr_ins_etp INTEGER,
            nbr_ins_dip INTEGER,
            tem_dip_iae VARCHAR(10),
            cod_uti VARCHAR(50),
            cod_dip VARCHAR(20),
            lib_dip VARCHAR(200),
            last_sync TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(cod_etu, cod_anu, cod_etp)
        )
    """,
    "element_pedagogi": """
        CREATE TABLE IF NOT EXISTS element_pedagogi (
            id SERIAL PRIMARY KEY,
            cod_elp VARCHAR(20) UNIQUE NOT NULL,
            cod_cmp VARCHAR(20),
            cod_nel VARCHAR(20),
            cod_pel VARCHAR(20),
            lib_elp VARCHAR(200),
            lic_elp VARCHAR(200),
            lib_elp_arb VARCHAR(200),
            element_type VARCHAR(10),
            semester_number INTEGER,
            last_sync TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "element_hierarchy": """
        CREATE TABLE IF NOT EXISTS element_hierarchy (
            id SERIAL PRIMARY KEY,
            cod_elp_pere VARCHAR(20) NOT NULL,
            cod_elp_fils VARCHAR(20) NOT NULL,
            last_sync TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(cod_elp_pere, cod_elp_fils)
        )
    """,
    "grades": """
        CREATE TABLE IF NOT EXISTS grades (
            id SERIAL PRIMARY KEY,
            cod_etu VARCHAR(20) NOT NULL,
            cod_anu INTEGER,
            cod_ses VARCHAR(20),
            cod_elp VARCHAR(20),
            not_elp DECIMAL(5,2),
            cod_tre VARCHAR(20),
            last_sync TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(cod_etu, cod_elp, cod_anu, cod_ses)
        )
    """,
    "pedagogical_situation": """
        CREATE TABLE IF NOT EXISTS pedagogical_situation (
            id SERIAL PRIMARY KEY,
            cod_etu VARCHAR(20) NOT NULL,
            lib_nom_pat_ind VARCHAR(100),
            lib_pr1_ind VARCHAR(100),
            daa_uni_con INTEGER,
            cod_elp VARCHAR(20) NOT NULL,
            lib_elp VARCHAR(200),
            lib_elp_arb VARCHAR(200),
            eta_iae VARCHAR(10),
            academic_level VARCHAR(20),
            is_yearly_element BOOLEAN DEFAULT FALSE,
            last_sync TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(cod_etu, cod_elp, daa_uni_con)
        )
    """,
    "laureats": """
        CREATE TABLE IF NOT EXISTS laureats (
            id SERIAL PRIMARY KEY,
            cod_etu VARCHAR(20) NOT NULL,
            nom_pat_ind VARCHAR(100),
            prenom_ind VARCHAR(100),
            cod_etp VARCHAR(20),
            cod_anu VARCHAR(4),
            cod_vrs_vet VARCHAR(10),
            cod_dip VARCHAR(20),
            lib_dip VARCHAR(200),
            cod_uti VARCHAR(50),
            dat_cre_iae TIMESTAMP,
            nbr_ins_cyc INTEGER,
            nbr_ins_etp INTEGER,
            nbr_ins_dip INTEGER,
            tem_dip_iae VARCHAR(1),
            cod_pay_nat VARCHAR(10),
            cod_etb VARCHAR(10),
            cod_nne_ind VARCHAR(50),
            dat_cre_ind TIMESTAMP,
            date_nai_ind DATE,
            cin_ind VARCHAR(20),
            sexe VARCHAR(1),
            lib_vil_nai_etu VARCHAR(100),
            nom_arabe VARCHAR(100),
            prenom_arabe VARCHAR(100),
            lieu_nai_arabe VARCHAR(100),
            last_sync TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT unique_laureat_record UNIQUE (cod_etu, cod_anu, cod_dip)
        )
    """,
    "grouping_rules": """
        CREATE TABLE IF NOT EXISTS grouping_rules (
            id SERIAL PRIMARY KEY,
            module_pattern VARCHAR(50) NOT NULL,
            group_name VARCHAR(50) NOT NULL,
            range_start VARCHAR(10) NOT NULL,
            range_end VARCHAR(10) NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "exam_planning": """
        CREATE TABLE IF NOT EXISTS exam_planning (
            id SERIAL PRIMARY KEY,
            module_code VARCHAR(50),
            module_name VARCHAR(255),
            group_name VARCHAR(100),
            exam_date DATE,
            start_time TIME,
            end_time TIME,
            location VARCHAR(100),
            professor_name VARCHAR(200),
            explicit_students BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "exam_assignments": """
        CREATE TABLE IF NOT EXISTS exam_assignments (
            id SERIAL PRIMARY KEY,
            exam_id INTEGER REFERENCES exam_planning(id) ON DELETE CASCADE,
            cod_etu VARCHAR(50) NOT NULL,
            assigned_group VARCHAR(100),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(exam_id, cod_etu)
        )
    """,
    "sync_log": """
        CREATE TABLE IF NOT EXISTS sync_log (
            id SERIAL PRIMARY KEY,
            sync_type VARCHAR(50),
            records_processed INTEGER,
            sync_status VARCHAR(20),
            error_message TEXT,
            sync_timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "admins": """
        CREATE TABLE IF NOT EXISTS admins (
            id SERIAL PRIMARY KEY,
            username VARCHAR(50) UNIQUE NOT NULL,
            password_hash VARCHAR(255) NOT NULL,
            full_name VARCHAR(100),
            role VARCHAR(20) DEFAULT 'SUPER_ADMIN',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
}

# Columns that older databases may lack
MIGRATIONS = [
    "ALTER TABLE pedagogical_situation ADD COLUMN IF NOT EXISTS lib_elp_arb VARCHAR(200)",
    "ALTER TABLE pedagogical_situation ADD COLUMN IF NOT EXISTS academic_level VARCHAR(20)",
    "ALTER TABLE pedagogical_situation ADD COLUMN IF NOT EXISTS is_yearly_element BOOLEAN DEFAULT FALSE",
    "ALTER TABLE pedagogical_situation ADD COLUMN IF NOT EXISTS created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
    "ALTER TABLE pedagogical_situation ADD COLUMN IF NOT EXISTS updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
    "ALTER TABLE element_pedagogi ADD COLUMN IF NOT EXISTS element_type VARCHAR(10)",
    "ALTER TABLE element_pedagogi ADD COLUMN IF NOT EXISTS semester_number INTEGER",
    "ALTER TABLE exam_planning ADD COLUMN IF NOT EXISTS explicit_students BOOLEAN DEFAULT FALSE",
    "ALTER TABLE exam_assignments ADD COLUMN IF NOT EXISTS assigned_group VARCHAR(100)",
    "ALTER TABLE laureats ADD COLUMN IF NOT EXISTS lib_dip VARCHAR(200)",
    "ALTER TABLE laureats ADD COLUMN IF NOT EXISTS created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
    "ALTER TABLE laureats ADD COLUMN IF NOT EXISTS updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_students_cod_etp ON students(cod_etp)",
    "CREATE INDEX IF NOT EXISTS idx_students_cod_anu ON students(cod_anu)",
    "CREATE INDEX IF NOT EXISTS idx_students_cin_ind ON students(cin_ind)",
    "CREATE INDEX IF NOT EXISTS idx_students_nbr_ins_cyc ON students(nbr_ins_cyc)",
    "CREATE INDEX IF NOT EXISTS idx_students_dat_cre_iae ON students(dat_cre_iae)",
    "CREATE INDEX IF NOT EXISTS idx_adm_cod_etu ON administrative_situation(cod_etu)",
    "CREATE INDEX IF NOT EXISTS idx_adm_cod_anu ON administrative_situation(cod_anu)",
    "CREATE INDEX IF NOT EXISTS idx_adm_registration ON administrative_situation(nbr_ins_cyc, dat_cre_iae, cod_uti)",
    "CREATE INDEX IF NOT EXISTS idx_grades_cod_etu ON grades(cod_etu)",
    "CREATE INDEX IF NOT EXISTS idx_grades_cod_anu ON grades(cod_anu)",
    "CREATE INDEX IF NOT EXISTS idx_grades_cod_ses ON grades(cod_ses)",
    "CREATE INDEX IF NOT EXISTS idx_element_semester ON element_pedagogi(semester_number)",
    "CREATE INDEX IF NOT EXISTS idx_hierarchy_fils ON element_hierarchy(cod_elp_fils)",
    "CREATE INDEX IF NOT EXISTS idx_ps_cod_etu ON pedagogical_situation(cod_etu)",
    "CREATE INDEX IF NOT EXISTS idx_ps_cod_elp ON pedagogical_situation(cod_elp)",
    "CREATE INDEX IF NOT EXISTS idx_ps_year ON pedagogical_situation(daa_uni_con)",
    "CREATE INDEX IF NOT EXISTS idx_laureats_cod_etu ON laureats(cod_etu)",
    "CREATE INDEX IF NOT EXISTS idx_laureats_cod_anu ON laureats(cod_anu)",
    "CREATE INDEX IF NOT EXISTS idx_rules_pattern ON grouping_rules(module_pattern)",
    "CREATE INDEX IF NOT EXISTS idx_assignments_cod_etu ON exam_assignments(cod_etu)",
    "CREATE INDEX IF NOT EXISTS idx_sync_log_timestamp ON sync_log(sync_timestamp)",
]


def schema_statements() -> List[str]:
    """All DDL in execution order (tables, then migrations, then indexes)."""
    return list(TABLES.values()) + MIGRATIONS + INDEXES


def init_schema(db) -> int:
    """Create or upgrade the schema in one transaction. Returns statement count."""
    statements = schema_statements()
    with db.session() as session:
        for statement in statements:
            session.execute(text(statement))
    logger.info("schema_initialized", tables=len(TABLES), statements=len(statements))
    return len(statements)
