"""
Module for reading student and marks sheets uploaded by administrators.

This module provides functionality to:
- Read CSV or Excel student lists for bulk admission
- Read CSV or Excel marks sheets keyed by roll number
- Normalise the column headers people actually type
- Validate the rows and return records ready for the data service
"""

from typing import Dict, List, Tuple

import pandas as pd

# Header spellings accepted for each field (compared case-insensitively)
STUDENT_COLUMN_ALIASES = {
    'full_name': ['full name', 'student name', 'name'],
    'class_name': ['class', 'class name', 'grade'],
    'section': ['section', 'sec'],
    'guardian_name': ['guardian name', 'guardian', "parent's name", 'parent name', 'father name'],
    'contact_number': ['contact number', 'contact', 'mobile', 'phone'],
    'status': ['status'],
    'date_of_birth': ['date of birth', 'dob', 'birth date'],
}

MARKS_COLUMN_ALIASES = {
    'roll_number': ['roll number', 'roll no.', 'roll no', 'roll'],
    'obj_marks': ['objective', 'obj', 'obj marks', 'objective marks'],
    'sub_marks': ['subjective', 'sub', 'sub marks', 'subjective marks'],
    'remarks': ['remarks', 'remark'],
}

ABSENT_MARKERS = {'AB', 'ABSENT', 'A'}


def read_table(file_path: str) -> Tuple[bool, pd.DataFrame, str]:
    """
    Read a CSV or Excel file into a dataframe.

    Args:
        file_path (str): Path to the file

    Returns:
        Tuple[bool, pd.DataFrame, str]: (success, dataframe, message)
    """
    file_path = str(file_path)
    try:
        if file_path.lower().endswith('.csv'):
            df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
        elif file_path.lower().endswith('.xlsx'):
            df = pd.read_excel(file_path, dtype=str).fillna('')
        else:
            return False, pd.DataFrame(), "Unsupported file format. Please use CSV or Excel (.xlsx)."
    except FileNotFoundError:
        return False, pd.DataFrame(), f"File not found: {file_path}"
    except pd.errors.EmptyDataError:
        return False, pd.DataFrame(), "File is empty or invalid"
    except pd.errors.ParserError as e:
        return False, pd.DataFrame(), f"Error parsing CSV file: {str(e)}"
    except Exception as e:
        return False, pd.DataFrame(), f"Error reading file: {str(e)}"

    # Clean column names and drop completely empty rows
    df.columns = [str(col).strip() for col in df.columns]
    df = df[~(df.astype(str).apply(lambda col: col.str.strip()) == '').all(axis=1)]
    if df.empty:
        return False, pd.DataFrame(), "File is empty or invalid"
    return True, df.reset_index(drop=True), "File loaded successfully"


def normalize_columns(df: pd.DataFrame, aliases: Dict[str, List[str]]) -> pd.DataFrame:
    """
    Rename recognised headers to field names and drop the rest.
    """
    rename = {}
    for col in df.columns:
        key = col.strip().lower()
        for field, names in aliases.items():
            if key == field or key in names:
                rename[col] = field
                break
    result = df.rename(columns=rename)
    return result[[col for col in aliases if col in result.columns]]


def read_student_sheet(file_path: str) -> Tuple[bool, List[Dict[str, str]], str]:
    """
    Read a student list for bulk admission.

    Expected columns (any order): Full Name, Class, Section, and optionally
    Guardian Name, Contact Number, Status, Date of Birth.

    Returns:
        Tuple[bool, list, str]: (success, student records, message)
    """
    success, df, message = read_table(file_path)
    if not success:
        return False, [], message

    df = normalize_columns(df, STUDENT_COLUMN_ALIASES)
    missing = [field for field in ('full_name', 'class_name', 'section') if field not in df.columns]
    if missing:
        labels = {'full_name': 'Full Name', 'class_name': 'Class', 'section': 'Section'}
        return False, [], f"Missing required column(s): {', '.join(labels[m] for m in missing)}"

    df = df.apply(lambda col: col.astype(str).str.strip())
    blank_names = df.index[df['full_name'] == ''].tolist()
    if blank_names:
        return False, [], f"Full Name is empty on row {blank_names[0] + 2}"

    return True, df.to_dict('records'), f"{len(df)} student(s) read successfully"


def read_marks_sheet(file_path: str, obj_max: float, sub_max: float) -> Tuple[bool, List[Dict], str]:
    """
    Read a marks sheet for one exam and subject.

    Expected columns: Roll No., Objective, Subjective and optionally Remarks.
    A mark of ``AB`` in either component marks the student absent.

    Args:
        file_path (str): Path to the CSV/Excel file
        obj_max (float): Maximum objective marks
        sub_max (float): Maximum subjective marks

    Returns:
        Tuple[bool, list, str]: (success, mark rows keyed by roll_number, message)
    """
    success, df, message = read_table(file_path)
    if not success:
        return False, [], message

    df = normalize_columns(df, MARKS_COLUMN_ALIASES)
    if 'roll_number' not in df.columns:
        return False, [], "Missing 'Roll No.' column"
    if 'obj_marks' not in df.columns and 'sub_marks' not in df.columns:
        return False, [], "No marks columns found (expected Objective and/or Subjective)"

    rows = []
    for idx, row in df.iterrows():
        line = idx + 2  # header is line 1
        roll = str(row['roll_number']).strip()
        if not roll:
            return False, [], f"Roll No. is empty on row {line}"

        raw = {field: str(row.get(field, '') or '').strip() for field in ('obj_marks', 'sub_marks')}
        attended = not any(value.upper() in ABSENT_MARKERS for value in raw.values())
        record = {
            'roll_number': roll,
            'attended': attended,
            'obj_marks': 0.0,
            'sub_marks': 0.0,
            'obj_max_marks': obj_max,
            'sub_max_marks': sub_max,
            'remarks': str(row.get('remarks', '') or '').strip(),
        }
        if attended:
            for field, maximum in (('obj_marks', obj_max), ('sub_marks', sub_max)):
                value = pd.to_numeric(raw[field] or 0, errors='coerce')
                if pd.isna(value):
                    return False, [], f"Invalid marks '{raw[field]}' on row {line}"
                if value < 0 or (maximum > 0 and value > maximum):
                    return False, [], f"Invalid marks found on row {line}. Marks should be between 0-{maximum:g}"
                record[field] = float(value)
        rows.append(record)

    return True, rows, f"{len(rows)} mark record(s) read successfully"
