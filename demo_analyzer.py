"""
Demo: Run analyzer on the admission form and output the report.
"""

from aflm.catalog import build_admission_form
from aflm.analyzer import analyze_form
from aflm.serialization import form_to_yaml


def print_report(report):
    """Pretty-print a FormReport."""
    print()
    print("=" * 70)
    print(f"FORM ANALYSIS REPORT: {report.form_name}")
    print("=" * 70)
    print()

    print("📊 BASIC METRICS")
    print(f"  Total Fields:          {report.total_fields}")
    print(f"  Total Rules:           {report.total_rules}")
    print(f"  Governed Fields:       {report.governed_fields}")
    print(f"  Repeatable Groups:     {report.total_groups}")
    print(f"  Element Rules:         {report.total_element_rules}")
    print()

    print("📈 REFERENCE ANALYSIS")
    print(f"  Undefined References:  {len(report.undefined_references)}")
    if report.undefined_references:
        print(f"    {sorted(report.undefined_references)}")
    print(f"  Trigger Not In Guard:  {len(report.triggers_not_in_condition)}")
    print(f"  Required And Governed: {len(report.required_and_governed)}")
    print(f"  Group/Field Mismatch:  {report.groups_without_field if report.groups_without_field else 'None'}")
    print()

    print("🔗 RULE TABLE")
    print(f"  Conflicts:             {len(report.conflicts)}")
    for conflict in report.conflicts:
        print(f"    {conflict}")
    print(f"  Consistent:            {'YES' if report.is_consistent else 'NO'}")
    print()

    print("📐 EXPRESSION COMPLEXITY")
    print(f"  Max Expression Depth:  {report.max_expression_depth}")
    print(f"  Total Expression Nodes:{report.total_expression_nodes}")
    print()

    if report.warnings:
        print("⚠️  WARNINGS")
        for i, warning in enumerate(report.warnings, 1):
            print(f"  {i}. {warning}")
    else:
        print("✨ NO WARNINGS - Rule table looks clean!")
    print()


if __name__ == "__main__":
    # Build the admission form
    form = build_admission_form()

    # Analyze it
    report = analyze_form(form)

    # Print report
    print_report(report)

    # Also save to YAML for inspection
    yaml_str = form_to_yaml(form)
    with open("admission_form_output.yaml", "w") as f:
        f.write(yaml_str)
    print("✅ Form exported to admission_form_output.yaml")
