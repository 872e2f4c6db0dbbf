from termcolor import colored

RULE = "-" * 72


def header(title: str):
    print(colored(RULE))
    print("{:^72}".format(title))
    print(colored(RULE))


def problem_summary(data, canonicalize_time=None, assemble_time=None):
    """Print the dimensions of an assembled conic problem.

    Args:
        data: Assembled ConicData
        canonicalize_time: Canonicalization time in seconds, if measured
        assemble_time: Assembly time in seconds, if measured
    """
    dims = data.dims
    soc = dims["soc"]
    header("CONIC PROBLEM")
    print("{:<24} {:>10}".format("Variables (columns)", data.num_vars))
    print("{:<24} {:>10}".format("Constraint rows", data.num_rows))
    print("{:<24} {:>10}".format("Nonzeros in A", data.A.nnz))
    print("{:<24} {:>10}".format("Zero cone rows", dims["zero"]))
    print("{:<24} {:>10}".format("Non-negative rows", dims["nonneg"]))
    print("{:<24} {:>10}".format("Second-order cones", len(soc)))
    if soc:
        print("{:<24} {:>10}".format("  largest cone", max(soc)))
    print("{:<24} {:>10}".format("Parameters", len(data.param_values)))
    if canonicalize_time is not None:
        print("{:<24} {:>10.2f}".format("Canonicalize (ms)", canonicalize_time * 1000))
    if assemble_time is not None:
        print("{:<24} {:>10.2f}".format("Assemble (ms)", assemble_time * 1000))
    print(colored(RULE))


def footer(status, value, solve_time):
    """Print the outcome of a solve."""
    color = "green" if status == "optimal" else "red"
    print(colored(RULE))
    print("{:<24} {:>20}".format("Status", colored(str(status), color)))
    print("{:<24} {:>20}".format("Objective", "{:.6g}".format(value) if value is not None else "-"))
    print("{:<24} {:>20.2f}".format("Solve time (ms)", solve_time * 1000))
    print(colored(RULE))
